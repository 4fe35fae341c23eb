"""Payment routes: create, query, and the admin approval workflow.

Every state change commits the request session before anything leaves the
process: queued notifications are dispatched as a background task, calls that
can leave a multi-hour booking half paid schedule the multi-hour reconciler,
and record/unrecord schedule the financial report rewrite. Background tasks
open their own sessions and see only committed data.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.database import get_db
from tennisclub.core.dependencies import get_current_user, require_admin
from tennisclub.models.member import User
from tennisclub.models.payment import PaymentMethod, PaymentStatus
from tennisclub.schemas import (
    CancelPaymentRequest,
    CleanupReportOut,
    PaymentCreate,
    PaymentNotesRequest,
    PaymentOut,
    PaymentPage,
    PaymentUpdate,
    ProcessPaymentRequest,
)
from tennisclub.services import notifications
from tennisclub.services.financial_report import run_financial_report_refresh
from tennisclub.services.orphans import cleanup_duplicate_payments, cleanup_orphaned_payments
from tennisclub.services.payments import (
    approve_payment,
    cancel_payment,
    create_payment,
    get_overdue_payments,
    get_payment,
    get_payment_stats,
    list_payments,
    process_payment,
    record_payment,
    unrecord_payment,
    update_payment,
)
from tennisclub.services.reconciliation import run_multi_hour_reconciliation

router = APIRouter(prefix="/payments", tags=["payments"])


async def _commit_and_dispatch(db: AsyncSession, background_tasks: BackgroundTasks) -> None:
    await db.commit()
    events = notifications.drain(db)
    if events:
        background_tasks.add_task(notifications.dispatch, events)


async def _commit_and_reconcile(db: AsyncSession, background_tasks: BackgroundTasks, user_id: int) -> None:
    await _commit_and_dispatch(db, background_tasks)
    background_tasks.add_task(run_multi_hour_reconciliation, user_id)


async def _commit_and_refresh_report(db: AsyncSession, background_tasks: BackgroundTasks) -> None:
    await _commit_and_dispatch(db, background_tasks)
    background_tasks.add_task(run_financial_report_refresh)


@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def create(
    body: PaymentCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment, created = await create_payment(db, user, **body.model_dump())
    if not created:
        response.status_code = status.HTTP_200_OK
    await _commit_and_reconcile(db, background_tasks, payment.user_id)
    return payment


@router.get("", response_model=PaymentPage)
async def list_all(
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    payment_method: PaymentMethod | None = None,
    user_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await list_payments(
        db,
        user,
        status=status_filter,
        payment_method=payment_method,
        user_id=user_id,
        page=page,
        limit=limit,
    )
    return PaymentPage(items=items, total=total, page=page, limit=limit)


@router.get("/mine", response_model=PaymentPage)
async def list_mine(
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await list_payments(db, user, status=status_filter, mine=True, page=page, limit=limit)
    return PaymentPage(items=items, total=total, page=page, limit=limit)


@router.get("/overdue", response_model=list[PaymentOut])
async def overdue(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await get_overdue_payments(db)


@router.get("/stats")
async def stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await get_payment_stats(db)


@router.post("/cleanup-orphans", response_model=CleanupReportOut)
async def cleanup_orphans(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await cleanup_orphaned_payments(db)


@router.post("/cleanup-duplicates", response_model=CleanupReportOut)
async def cleanup_duplicates(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await cleanup_duplicate_payments(db)


@router.get("/{payment_id}", response_model=PaymentOut)
async def get_one(payment_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_payment(db, payment_id, user)


@router.put("/{payment_id}", response_model=PaymentOut)
async def update(
    payment_id: int,
    body: PaymentUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await update_payment(db, payment_id, user, **body.model_dump())
    await _commit_and_reconcile(db, background_tasks, payment.user_id)
    return payment


@router.put("/{payment_id}/process", response_model=PaymentOut)
async def process(
    payment_id: int,
    body: ProcessPaymentRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await process_payment(
        db,
        payment_id,
        user,
        transaction_id=body.transaction_id,
        reference_number=body.reference_number,
        notes=body.notes,
    )
    await _commit_and_reconcile(db, background_tasks, payment.user_id)
    return payment


@router.put("/{payment_id}/approve", response_model=PaymentOut)
async def approve(
    payment_id: int,
    body: PaymentNotesRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payment = await approve_payment(db, payment_id, admin, notes=body.notes)
    await _commit_and_reconcile(db, background_tasks, payment.user_id)
    return payment


@router.put("/{payment_id}/record", response_model=PaymentOut)
async def record(
    payment_id: int,
    body: PaymentNotesRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payment = await record_payment(db, payment_id, admin, notes=body.notes)
    await _commit_and_refresh_report(db, background_tasks)
    return payment


@router.put("/{payment_id}/unrecord", response_model=PaymentOut)
async def unrecord(
    payment_id: int,
    body: PaymentNotesRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payment = await unrecord_payment(db, payment_id, admin, notes=body.notes)
    await _commit_and_refresh_report(db, background_tasks)
    return payment


@router.post("/{payment_id}/cancel", response_model=PaymentOut)
async def cancel(
    payment_id: int,
    body: CancelPaymentRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await cancel_payment(db, payment_id, user, reason=body.reason)
    await _commit_and_reconcile(db, background_tasks, payment.user_id)
    return payment
