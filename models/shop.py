from datetime import datetime
import uuid
from db.extensions import db


class Shop(db.Model):
    """Seller storefront. Owned by the catalog service; read-only here."""
    __tablename__ = "shops"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = db.Column(db.String(450), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Shop id={self.id} seller={self.seller_id} name={self.name}>"
