from sqlalchemy import Column, String, Boolean, false
from qrcoded.db.database import Base
from qrcoded.models.base_model import timestamp_created, timestamp_nullable


class QRCode(Base):
    __tablename__ = "qr_codes"

    id = Column(String(64), primary_key=True)
    image_url = Column(String, nullable=False)

    # Identity fields stay empty until activation sets all three at once.
    first_name = Column(String, nullable=False, default="", server_default="")
    last_name = Column(String, nullable=False, default="", server_default="")
    account_number = Column(String, nullable=False, default="", server_default="")
    is_activated = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = timestamp_created()
    activated_at = timestamp_nullable()

    def __repr__(self) -> str:
        return f"<QRCode id={self.id} activated={self.is_activated}>"
