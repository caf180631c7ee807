from fastapi import APIRouter

from partipay.api.deps import to_http_exception
from partipay.core.exceptions import SplitSessionError
from partipay.schemas.session import BillLookupRequest, BillLookupResponse
from partipay.services.pos_service import PosService

router = APIRouter()


@router.post("/lookup", response_model=BillLookupResponse)
async def lookup_bill(lookup_in: BillLookupRequest):
    """Fetch the open bill for a scanned table QR code."""
    try:
        return await PosService.lookup_bill(lookup_in.table_number, lookup_in.restaurant_name)
    except SplitSessionError as e:
        raise to_http_exception(e)
