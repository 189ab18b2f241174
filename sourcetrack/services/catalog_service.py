"""Factories and product types: per-company reference lists for projects."""

import logging
import numbers

from sourcetrack.core.exceptions import NotFoundError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.catalog import Factory, ProductType
from sourcetrack.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

# body key -> (column, kind)
_FACTORY_FIELDS = {
    "name": ("name", "name"),
    "address": ("address", "text"),
    "latitude": ("latitude", "number"),
    "longitude": ("longitude", "number"),
}
_PRODUCT_TYPE_FIELDS = {
    "name": ("name", "name"),
    "nameRu": ("name_ru", "text"),
    "nameZh": ("name_zh", "text"),
    "description": ("description", "text"),
}


def _coerce(key, kind, value):
    if kind == "name":
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Invalid data", details={key: "Name is required"})
        return value.strip()
    if value is None:
        return None
    if kind == "number":
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValidationError("Invalid data", details={key: "Expected a number"})
        return float(value)
    if not isinstance(value, str):
        raise ValidationError("Invalid data", details={key: "Expected a string"})
    return value or None


def _apply(obj, fields, data, partial):
    for key, (attr, kind) in fields.items():
        if key in data:
            setattr(obj, attr, _coerce(key, kind, data[key]))
        elif not partial and kind == "name":
            raise ValidationError("Invalid data", details={key: "Name is required"})


def _list(model, company_id):
    return [o.to_dict() for o in model.query_for_company(company_id).order_by(model.name).all()]


def _get(model, obj_id, company_id):
    obj = model.get_for_company(obj_id, company_id)
    if obj is None:
        raise NotFoundError(model.__name__, obj_id, company_id)
    return obj


def _create(model, fields, company_id, data):
    obj = model(company_id=company_id)
    _apply(obj, fields, data, partial=False)
    db.session.add(obj)
    commit_or_raise(model.__name__)
    logger.info("%s created id=%s company=%s", model.__name__, obj.id, company_id)
    return obj


def _update(model, fields, obj_id, company_id, data):
    obj = _get(model, obj_id, company_id)
    _apply(obj, fields, data, partial=True)
    commit_or_raise(model.__name__)
    logger.info("%s updated id=%s", model.__name__, obj.id)
    return obj


def _delete(model, obj_id, company_id):
    obj = _get(model, obj_id, company_id)
    db.session.delete(obj)
    commit_or_raise(model.__name__)
    logger.info("%s deleted id=%s", model.__name__, obj_id)


# ── Factories ─────────────────────────────────────────────────────────
def list_factories(company_id):
    return _list(Factory, company_id)


def create_factory(company_id, data):
    return _create(Factory, _FACTORY_FIELDS, company_id, data)


def update_factory(factory_id, company_id, data):
    return _update(Factory, _FACTORY_FIELDS, factory_id, company_id, data)


def delete_factory(factory_id, company_id):
    _delete(Factory, factory_id, company_id)


# ── Product types ─────────────────────────────────────────────────────
def list_product_types(company_id):
    return _list(ProductType, company_id)


def create_product_type(company_id, data):
    return _create(ProductType, _PRODUCT_TYPE_FIELDS, company_id, data)


def update_product_type(type_id, company_id, data):
    return _update(ProductType, _PRODUCT_TYPE_FIELDS, type_id, company_id, data)


def delete_product_type(type_id, company_id):
    _delete(ProductType, type_id, company_id)
