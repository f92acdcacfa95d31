from decimal import Decimal
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Numeric, CheckConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


ACTIVE_PICKUP_CODE_INDEX = "uq_orders_active_pickup_code"
_ACTIVE_ONLY = text("status IN ('pending', 'ready')")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        # A pickup code may be reused once its order is completed
        Index(
            ACTIVE_PICKUP_CODE_INDEX,
            "pickup_code",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), index=True)
    canteen_id: Mapped[int] = mapped_column(ForeignKey("canteens.id", ondelete="RESTRICT"), index=True)
    # Fixed at creation from the line items, never recomputed
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    pickup_code: Mapped[str] = mapped_column(String(12), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    canteen = relationship("Canteen")
    student = relationship("User")
    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order")

    @property
    def canteen_name(self) -> str | None:
        return self.canteen.name if self.canteen else None

    @property
    def student_name(self) -> str:
        return self.student.name if self.student else "Unknown"
