"""Active negotiation index row"""

from datetime import datetime
import uuid

from sqlalchemy import String, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from nego_engine.db.base import Base
from nego_engine.db.types import UTCDateTime


class ActiveNegotiation(Base):
    """(buyer, project) -> the one negotiation currently active for that pair.

    The composite primary key is what rejects a second concurrent open.
    """

    __tablename__ = "active_negotiations"

    buyer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("negotiations.id"),
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    def __repr__(self) -> str:
        return f"<ActiveNegotiation buyer={self.buyer_id} project={self.project_id}>"
