"""User model.

Only the fields the purchase ledger needs: purchases are attributed to a
user via the ``metadata.userId`` echoed on Stripe objects, and the email
address is used for order status notifications.
"""

import uuid

from app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=True)
    name = db.Column(db.String(255))
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    purchases = db.relationship(
        "Purchase",
        back_populates="user",
        lazy="dynamic",
        order_by="Purchase.created_at",
    )

    def __repr__(self):
        return f"<User {self.email or self.id}>"
