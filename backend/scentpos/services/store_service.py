from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from scentpos.extensions import db
from scentpos.models import Store, User
from scentpos.services.concurrency import lock_for_update, run_with_retry
from scentpos.validation import ConflictError, NotFoundError, ValidationError, parse_tax_rate_bps


USER_ROLES = ("ADMIN", "MANAGER", "CASHIER")


def create_store(
    name: str,
    *,
    code: str | None = None,
    address: str | None = None,
    phone: str | None = None,
    tax_rate=0,
) -> Store:
    tax_rate_bps = parse_tax_rate_bps(tax_rate)

    def _op():
        if not name or not name.strip():
            raise ValidationError("Store name is required")

        store = Store(
            name=name.strip(),
            code=code,
            address=address,
            phone=phone,
            tax_rate_bps=tax_rate_bps,
        )
        db.session.add(store)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Store code {code!r} already exists")
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name.asc()).all()


def update_store_settings(
    store_id: int,
    *,
    name: str | None = None,
    address: str | None = None,
    phone: str | None = None,
    tax_rate=None,
) -> Store:
    """
    Edit shop details. A new tax_rate only affects orders settled after the
    commit; existing orders keep their snapshotted rate.
    """
    tax_rate_bps = parse_tax_rate_bps(tax_rate) if tax_rate is not None else None

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if store is None:
            raise NotFoundError(f"Store {store_id} not found")

        if name is not None:
            if not name.strip():
                raise ValidationError("Store name cannot be empty")
            store.name = name.strip()
        if address is not None:
            store.address = address
        if phone is not None:
            store.phone = phone
        if tax_rate_bps is not None and tax_rate_bps != store.tax_rate_bps:
            current_app.logger.info(
                "Store %s tax rate changed %s -> %s bps", store.id, store.tax_rate_bps, tax_rate_bps
            )
            store.tax_rate_bps = tax_rate_bps

        db.session.commit()
        return store

    return run_with_retry(_op)


def create_user(*, name: str, email: str, store_id: int | None = None, role: str = "CASHIER") -> User:
    role = (role or "").upper()
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    if not name or not email:
        raise ValidationError("name and email are required")

    def _op():
        if store_id is not None:
            get_store(store_id)
        user = User(name=name, email=email.strip().lower(), store_id=store_id, role=role)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"User {email!r} already exists")
        return user

    return run_with_retry(_op)
