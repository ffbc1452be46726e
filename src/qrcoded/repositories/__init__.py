# src/qrcoded/repositories/__init__.py
from .qr_code_repository import QRCodeRepository

__all__ = [
    "QRCodeRepository",
]
