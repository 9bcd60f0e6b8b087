from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, admin_access, staff_access
from dairy_portal.db import get_db
from dairy_portal.dependencies import get_client_ip
from dairy_portal.security.csrf import verify_csrf
from dairy_portal.services.audit_service import list_customer_audit, log_audit
from dairy_portal.services.balance_service import current_pending_balance
from dairy_portal.services.customer_service import (
    create_customer,
    delete_customer,
    get_customer,
    list_customers,
    update_customer,
)

router = APIRouter(prefix='/customers', tags=['customers'])


@router.get('')
def customers_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    search = request.query_params.get('q', '').strip()
    return request.app.state.templates.TemplateResponse(
        'customers.html',
        {
            'request': request,
            'principal': principal,
            'customers': list_customers(db, search=search),
            'search': search,
            'can_manage': principal.is_admin,
        },
    )


@router.post('')
async def create_customer_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        customer = create_customer(
            db,
            name=str(form.get('name', '')),
            address=str(form.get('address', '')),
            phone_number=str(form.get('phone_number', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_CREATED',
        ip=get_client_ip(request),
        customer_id=customer.id,
        metadata={'name': customer.name},
    )
    db.commit()
    return RedirectResponse('/customers', status_code=303)


@router.get('/{customer_id}')
def customer_detail(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    try:
        customer = get_customer(db, customer_id=customer_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return request.app.state.templates.TemplateResponse(
        'customer_detail.html',
        {
            'request': request,
            'principal': principal,
            'customer': customer,
            'pending_amount': current_pending_balance(db, customer_id=customer.id),
            'audit_rows': list_customer_audit(db, customer_id=customer.id),
            'can_manage': principal.is_admin,
        },
    )


@router.post('/{customer_id}')
async def update_customer_submit(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        customer = update_customer(
            db,
            customer_id=customer_id,
            name=str(form.get('name', '')),
            address=str(form.get('address', '')),
            phone_number=str(form.get('phone_number', '')),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_UPDATED',
        ip=get_client_ip(request),
        customer_id=customer.id,
        metadata={'name': customer.name},
    )
    db.commit()
    return RedirectResponse(f'/customers/{customer.id}', status_code=303)


@router.post('/{customer_id}/delete')
def delete_customer_submit(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        customer = delete_customer(db, customer_id=customer_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_DELETED',
        ip=get_client_ip(request),
        metadata={'customer_id': customer_id, 'name': customer.name},
    )
    db.commit()
    return RedirectResponse('/customers', status_code=303)
