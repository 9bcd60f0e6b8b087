from __future__ import annotations

import logging
from datetime import date
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, staff_access
from dairy_portal.config import settings
from dairy_portal.db import get_db
from dairy_portal.dependencies import get_client_ip, parse_month_param, parse_optional_id
from dairy_portal.security.csrf import verify_csrf
from dairy_portal.services.audit_service import log_audit
from dairy_portal.services.bill_message_service import bill_file_name, compose_bill_message, whatsapp_link
from dairy_portal.services.bill_pdf_service import render_bill_pdf
from dairy_portal.services.bill_service import CustomerBill, load_monthly_bill
from dairy_portal.services.customer_service import list_customers
from dairy_portal.services.storage_factory import get_bill_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/bills', tags=['bills'])


def _load_bill(db: Session, *, customer_id: int, month: date) -> CustomerBill:
    try:
        return load_monthly_bill(db, customer_id=customer_id, month=month)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _render(bill: CustomerBill) -> bytes:
    content = render_bill_pdf(bill, business_name=settings.business_name)
    if content is None:
        raise HTTPException(status_code=500, detail='The bill could not be generated. Please try again.')
    return content


@router.get('')
def bills_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    month = parse_month_param(request.query_params.get('month'), default=date.today())
    customer_id = parse_optional_id(request.query_params.get('customer_id'))
    bill = _load_bill(db, customer_id=customer_id, month=month) if customer_id else None
    return request.app.state.templates.TemplateResponse(
        'bills.html',
        {
            'request': request,
            'principal': principal,
            'customers': list_customers(db),
            'selected_customer_id': customer_id,
            'month': month,
            'bill': bill,
        },
    )


@router.get('/{customer_id}/pdf')
def download_bill_pdf(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    month = parse_month_param(request.query_params.get('month'), default=date.today())
    bill = _load_bill(db, customer_id=customer_id, month=month)
    content = _render(bill)
    file_name = bill_file_name(bill.customer.name, month)
    return Response(
        content=content,
        media_type='application/pdf',
        headers={'Content-Disposition': f"attachment; filename*=UTF-8''{quote(file_name)}"},
    )


@router.post('/{customer_id}/share')
async def share_bill(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    month = parse_month_param(str(form.get('month', '')), default=date.today())
    bill = _load_bill(db, customer_id=customer_id, month=month)
    if not bill.customer.phone_number:
        raise HTTPException(status_code=400, detail='Customer has no phone number to share the bill with')

    content = _render(bill)
    file_name = bill_file_name(bill.customer.name, month)
    try:
        pdf_url = get_bill_storage().upload(file_name=file_name, content=content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RuntimeError as exc:
        logger.exception('Bill upload failed for customer %s', customer_id)
        raise HTTPException(status_code=502, detail='Failed to upload the bill. Please try again.') from exc

    message = compose_bill_message(bill, pdf_url=pdf_url, business_name=settings.business_name)
    try:
        link = whatsapp_link(bill.customer.phone_number, message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='BILL_SHARED',
        ip=get_client_ip(request),
        customer_id=customer_id,
        metadata={'month': month.isoformat(), 'file_name': file_name, 'pdf_url': pdf_url},
    )
    db.commit()
    return RedirectResponse(link, status_code=303)
