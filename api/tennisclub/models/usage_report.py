"""Court usage report: what each member paid for court time, month by month."""

from sqlalchemy import Float, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from tennisclub.models.base import Base, JSONType, TimestampMixin


class CourtUsageReport(TimestampMixin, Base):
    """One row per member per year.

    monthly_amounts is sparse: {"2025-03": 40.0}. Months without recorded
    usage have no key at all.
    """

    __tablename__ = "court_usage_reports"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_name: Mapped[str] = mapped_column(String(200), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_amounts: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    __table_args__ = (Index("ix_usage_member_year", "member_name", "year", unique=True),)

    def recalculate_total(self) -> float:
        self.total_amount = round(sum((self.monthly_amounts or {}).values()), 2)
        return self.total_amount

    def __repr__(self) -> str:
        return f"<CourtUsageReport {self.member_name} {self.year} total={self.total_amount}>"


@event.listens_for(CourtUsageReport, "before_insert")
@event.listens_for(CourtUsageReport, "before_update")
def _sync_total(mapper, connection, target: CourtUsageReport) -> None:
    target.recalculate_total()
