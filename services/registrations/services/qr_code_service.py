"""Generación, regeneración y validación de códigos QR de registros"""
import asyncio
import logging
import os
from typing import Dict, Optional

from shared.utils.qr_generator import build_qr_payload, encode_qr_payload, decode_qr_payload, render_qr_png

logger = logging.getLogger(__name__)


class QrCodeService:
    """
    Escribe un PNG por registro en upload_dir con nombre determinístico
    qrcode-<registrationId>.png; la base de datos guarda solo el nombre.
    """

    def __init__(self, upload_dir: str):
        self.upload_dir = upload_dir

    @staticmethod
    def filename_for(registration_id) -> str:
        return f"qrcode-{registration_id}.png"

    def path_for(self, filename: str) -> str:
        # basename evita que un nombre guardado salga del directorio de uploads
        return os.path.join(self.upload_dir, os.path.basename(filename))

    async def generate_qr_code(self, registration_id, user_id, event_id) -> str:
        """Renderizar el QR del registro y retornar el nombre del archivo"""
        payload = build_qr_payload(registration_id, user_id, event_id)
        encoded = encode_qr_payload(payload)
        filename = self.filename_for(registration_id)
        path = self.path_for(filename)

        os.makedirs(self.upload_dir, exist_ok=True)
        await asyncio.to_thread(render_qr_png, encoded, path)
        logger.info(f"QR generado para registro {registration_id}: {filename}")
        return filename

    def delete_qr_code(self, filename: Optional[str]) -> None:
        """Eliminar el archivo si existe; un archivo ausente no es error"""
        if not filename:
            return
        try:
            os.remove(self.path_for(filename))
        except FileNotFoundError:
            logger.debug(f"QR file {filename} already absent")

    async def regenerate_qr_code(self, registration) -> str:
        """Eliminar el QR actual (si hay) y generar uno nuevo con el mismo nombre"""
        self.delete_qr_code(registration.qr_code)
        return await self.generate_qr_code(registration.id, registration.user_id, registration.event_id)

    @staticmethod
    def validate_qr_code(encoded) -> Optional[Dict[str, str]]:
        """Payload decodificado, o None si el contenido escaneado no es válido"""
        payload = decode_qr_payload(encoded)
        if payload is None:
            logger.info("Rejected malformed QR payload")
        return payload
