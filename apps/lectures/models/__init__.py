# Import all models so SQLAlchemy can discover them
from .document import DocumentRecord

__all__ = ["DocumentRecord"]
