from qrcoded.db.database import Base

# Import all models so metadata can discover them
from .qr_code import QRCode
