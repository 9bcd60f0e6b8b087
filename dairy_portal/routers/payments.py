from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, admin_access, can_clear_balances, staff_access
from dairy_portal.db import get_db
from dairy_portal.dependencies import get_client_ip, parse_date_param, parse_optional_id
from dairy_portal.security.csrf import verify_csrf
from dairy_portal.services.audit_service import log_audit
from dairy_portal.services.balance_service import list_customer_balances
from dairy_portal.services.customer_service import list_customers
from dairy_portal.services.money_utils import ZERO, parse_decimal
from dairy_portal.services.payment_service import (
    PAYMENT_METHODS,
    BulkPaymentLine,
    clear_balance,
    delete_payment,
    list_payments,
    record_bulk_payments,
    record_payment,
)

router = APIRouter(prefix='/payments', tags=['payments'])


@router.get('')
def payments_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    search = request.query_params.get('q', '').strip()
    from_date = parse_date_param(request.query_params.get('from'), field='from date')
    to_date = parse_date_param(request.query_params.get('to'), field='to date')
    rows = list_payments(db, search=search, from_date=from_date, to_date=to_date)
    return request.app.state.templates.TemplateResponse(
        'payments.html',
        {
            'request': request,
            'principal': principal,
            'rows': rows,
            'total': sum((row['amount'] for row in rows), ZERO),
            'search': search,
            'from_date': from_date,
            'to_date': to_date,
            'customers': list_customers(db),
            'payment_methods': PAYMENT_METHODS,
            'selected_customer_id': parse_optional_id(request.query_params.get('customer_id')),
            'today': date.today(),
            'can_delete': principal.is_admin,
        },
    )


@router.post('')
async def record_payment_submit(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    customer_id = parse_optional_id(form.get('customer_id'))
    payment_date = parse_date_param(str(form.get('payment_date', '')), field='payment date') or date.today()
    try:
        if customer_id is None:
            raise ValueError('Select a customer')
        payment = record_payment(
            db,
            customer_id=customer_id,
            amount=parse_decimal(form.get('amount'), field='Amount', allow_zero=False),
            payment_date=payment_date,
            payment_method=str(form.get('payment_method', 'Cash')),
            notes=str(form.get('notes', '')),
            principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PAYMENT_RECORDED',
        ip=get_client_ip(request),
        customer_id=payment.customer_id,
        metadata={'payment_id': payment.id, 'amount': str(payment.amount)},
    )
    db.commit()
    return RedirectResponse('/payments', status_code=303)


@router.get('/bulk')
def bulk_payments_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    return request.app.state.templates.TemplateResponse(
        'payments_bulk.html',
        {
            'request': request,
            'principal': principal,
            'balances': list_customer_balances(db),
            'payment_methods': PAYMENT_METHODS,
            'today': date.today(),
        },
    )


@router.post('/bulk')
async def bulk_payments_submit(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    payment_date = parse_date_param(str(form.get('payment_date', '')), field='payment date') or date.today()
    lines: list[BulkPaymentLine] = []
    try:
        for key, raw in form.multi_items():
            if not key.startswith('amount__'):
                continue
            customer_id = parse_optional_id(key[len('amount__') :])
            amount = parse_decimal(raw, field='Amount', allow_blank=True)
            if customer_id is not None and amount:
                lines.append(BulkPaymentLine(customer_id=customer_id, amount=amount))
        payments = record_bulk_payments(
            db,
            lines=lines,
            payment_date=payment_date,
            payment_method=str(form.get('payment_method', 'Cash')),
            notes=str(form.get('notes', '')),
            principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    ip = get_client_ip(request)
    for payment in payments:
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='PAYMENT_RECORDED',
            ip=ip,
            customer_id=payment.customer_id,
            metadata={'payment_id': payment.id, 'amount': str(payment.amount), 'bulk': True},
        )
    db.commit()
    return RedirectResponse('/payments', status_code=303)


@router.get('/pending')
def pending_payments_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    rows = list_customer_balances(db, only_pending=True)
    return request.app.state.templates.TemplateResponse(
        'payments_pending.html',
        {
            'request': request,
            'principal': principal,
            'rows': rows,
            'total_pending': sum((row.pending_amount for row in rows), ZERO),
            'can_clear': can_clear_balances(principal),
        },
    )


@router.post('/pending/{customer_id}/clear')
def clear_balance_submit(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        payment = clear_balance(db, principal=principal, customer_id=customer_id, payment_date=date.today())
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if payment is not None:
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='BALANCE_CLEARED',
            ip=get_client_ip(request),
            customer_id=customer_id,
            metadata={'payment_id': payment.id, 'amount': str(payment.amount)},
        )
    db.commit()
    return RedirectResponse('/payments/pending', status_code=303)


@router.post('/{payment_id}/delete')
def delete_payment_submit(
    payment_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        payment = delete_payment(db, payment_id=payment_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PAYMENT_DELETED',
        ip=get_client_ip(request),
        customer_id=payment.customer_id,
        metadata={'payment_id': payment_id, 'amount': str(payment.amount)},
    )
    db.commit()
    return RedirectResponse('/payments', status_code=303)
