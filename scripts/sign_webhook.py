"""Sign a webhook body with the Paypack secret and POST it to a running bridge.

Useful for manual end-to-end checks and for forged-signature testing.
"""

import argparse
import json
from pathlib import Path

import httpx

from pushpay.services.paypack.signature import SIGNATURE_HEADER, compute_signature


def build_body(ref: str, status: str) -> bytes:
    """Serialize a `transaction:processed` event the way Paypack nests it."""

    payload = {"kind": "transaction:processed", "data": {"ref": ref, "status": status, "kind": "CASHIN"}}
    return json.dumps(payload).encode("utf-8")


def main() -> None:
    """Parse CLI args, sign one body and send it."""

    parser = argparse.ArgumentParser(description="POST a signed Paypack webhook.")
    parser.add_argument("--url", default="http://localhost:4000/api/webhook")
    parser.add_argument("--secret", required=True)
    parser.add_argument("--ref", default=None)
    parser.add_argument("--status", default="successful")
    parser.add_argument("--file", dest="json_file", default=None, help="Send this file's bytes verbatim")
    parser.add_argument("--tamper", action="store_true", help="Flip one byte after signing")
    args = parser.parse_args()

    if bool(args.ref) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --ref or --file")

    body = Path(args.json_file).read_bytes() if args.json_file else build_body(args.ref, args.status)
    signature = compute_signature(args.secret, body).decode("ascii")
    if args.tamper:
        body = body[:-1] + bytes([body[-1] ^ 0x01])

    resp = httpx.post(
        args.url,
        content=body,
        headers={"Content-Type": "application/json", SIGNATURE_HEADER: signature},
        timeout=10.0,
    )
    print(f"status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
