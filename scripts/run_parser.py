"""Run the Bancolombia SMS parser on a message and print the result as JSON.

    python scripts/run_parser.py "Bancolombia: Recibiste una transferencia por $190,000 ..."

Reads the message from stdin when no argument is given.
"""
import os, sys, json
sys.path.insert(0, os.path.abspath("."))
sys.path.insert(0, "src")
from balances_webhook.parsers.bancolombia_parser import parse_bancolombia_sms

message = " ".join(sys.argv[1:]) if len(sys.argv) > 1 else sys.stdin.read()
parsed = parse_bancolombia_sms(message)
print(json.dumps(parsed.model_dump(by_alias=True, mode="json"), indent=2, ensure_ascii=False))
sys.exit(0 if parsed.success else 1)
