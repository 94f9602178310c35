from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


class InvoiceSequence(db.Model):
    """
    Atomic per-day invoice counters.

    One row per (prefix, calendar day), e.g. "INV-20261018". next_number is the
    number the next sale of that day will receive.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_key": self.sequence_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
