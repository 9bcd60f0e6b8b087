from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, admin_access
from dairy_portal.db import get_db
from dairy_portal.dependencies import get_client_ip
from dairy_portal.security.csrf import verify_csrf
from dairy_portal.services.audit_service import log_audit
from dairy_portal.services.milk_type_service import (
    create_milk_type,
    delete_milk_type,
    list_milk_types,
    update_milk_type,
)
from dairy_portal.services.money_utils import parse_decimal

router = APIRouter(prefix='/milk-types', tags=['milk_types'])


@router.get('')
def milk_types_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return request.app.state.templates.TemplateResponse(
        'milk_types.html',
        {
            'request': request,
            'principal': principal,
            'milk_types': list_milk_types(db),
        },
    )


@router.post('')
async def create_milk_type_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        milk_type = create_milk_type(
            db,
            name=str(form.get('name', '')),
            price_per_liter=parse_decimal(form.get('price_per_liter'), field='Price per liter', allow_zero=False),
            description=str(form.get('description', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='MILK_TYPE_CREATED',
        ip=get_client_ip(request),
        metadata={'milk_type_id': milk_type.id, 'price_per_liter': str(milk_type.price_per_liter)},
    )
    db.commit()
    return RedirectResponse('/milk-types', status_code=303)


@router.post('/{milk_type_id}')
async def update_milk_type_submit(
    milk_type_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        milk_type = update_milk_type(
            db,
            milk_type_id=milk_type_id,
            name=str(form.get('name', '')),
            price_per_liter=parse_decimal(form.get('price_per_liter'), field='Price per liter', allow_zero=False),
            description=str(form.get('description', '')),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='MILK_TYPE_UPDATED',
        ip=get_client_ip(request),
        metadata={'milk_type_id': milk_type.id, 'price_per_liter': str(milk_type.price_per_liter)},
    )
    db.commit()
    return RedirectResponse('/milk-types', status_code=303)


@router.post('/{milk_type_id}/delete')
def delete_milk_type_submit(
    milk_type_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        milk_type = delete_milk_type(db, milk_type_id=milk_type_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='MILK_TYPE_DELETED',
        ip=get_client_ip(request),
        metadata={'milk_type_id': milk_type_id, 'name': milk_type.name},
    )
    db.commit()
    return RedirectResponse('/milk-types', status_code=303)
