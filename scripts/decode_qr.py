#!/usr/bin/env python3
"""Script para generar un QR de prueba o decodificar el contenido de uno escaneado"""
import argparse
import json
import sys
import uuid

from shared.utils.qr_generator import build_qr_payload, decode_qr_payload, encode_qr_payload, render_qr_png


def main() -> int:
    parser = argparse.ArgumentParser(description="Generar o decodificar QR de registros")
    sub = parser.add_subparsers(dest="command", required=True)

    decode = sub.add_parser("decode", help="Decodificar el texto leído desde un QR")
    decode.add_argument("content")

    generate = sub.add_parser("generate", help="Generar un PNG con IDs aleatorios o dados")
    generate.add_argument("--registration-id", default=str(uuid.uuid4()))
    generate.add_argument("--user-id", default=str(uuid.uuid4()))
    generate.add_argument("--event-id", default=str(uuid.uuid4()))
    generate.add_argument("--output", default="qrcode-test.png")

    args = parser.parse_args()

    if args.command == "decode":
        payload = decode_qr_payload(args.content)
        if payload is None:
            print("QR inválido")
            return 1
        print(json.dumps(payload, indent=2))
        return 0

    encoded = encode_qr_payload(build_qr_payload(args.registration_id, args.user_id, args.event_id))
    render_qr_png(encoded, args.output)
    print(f"QR escrito en {args.output}")
    print(f"Contenido: {encoded}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
