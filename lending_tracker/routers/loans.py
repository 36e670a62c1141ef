from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, crud
from ..dependencies import get_db
from ..auth import get_current_user

router = APIRouter(
    prefix="/loans",
    tags=["loans"],
)


@router.post("/borrow", response_model=schemas.Loan, status_code=status.HTTP_201_CREATED)
async def borrow(
    request: schemas.BorrowRequest,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.TokenData = Depends(get_current_user)
) -> schemas.Loan:
    """
    アイテムを貸し出します。対象が既に貸出中の場合は400を返します。
    """
    return await crud.borrow_item(
        db,
        item_id=request.item_id,
        item_type=request.item_type,
        borrower_name=request.borrower_name,
        due_date=request.due_date,
        acting_user_id=current_user.user_id,
    )


@router.post("/return", response_model=schemas.Loan)
async def return_item(
    request: schemas.ReturnRequest,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.TokenData = Depends(get_current_user)
) -> schemas.Loan:
    """
    貸出を返却済みにします。既に返却済みの場合は400を返します。
    """
    return await crud.return_loan(db, request.loan_id, acting_user_id=current_user.user_id)


@router.get("", response_model=List[schemas.LoanDetail])
async def read_loans(
    loan_status: Optional[str] = Query(None, alias="status"),
    borrower_name: Optional[str] = Query(None, alias="borrowerName"),
    db: AsyncSession = Depends(get_db)
) -> List[schemas.LoanDetail]:
    """
    貸出一覧を取得します。status が loaned / returned 以外の場合は絞り込みを行いません。
    """
    try:
        status_filter = schemas.LoanStatus(loan_status) if loan_status else None
    except ValueError:
        status_filter = None
    return await crud.get_loans(db, status=status_filter, borrower_name=borrower_name)


@router.get("/active", response_model=List[schemas.LoanDetail])
async def read_active_loans(db: AsyncSession = Depends(get_db)) -> List[schemas.LoanDetail]:
    return await crud.get_loans(db, status=schemas.LoanStatus.loaned)
