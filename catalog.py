"""
Reference data: states, districts, tehsils, stamp categories and stamp products.

Thin passthrough to the document store. Records come back as plain dicts with a
string `id`. Parent ids (District.stateId, Tehsil.districtId,
StampProduct.stateId/categoryId) are stored as given and never checked.
"""
import re
from typing import Any, Dict, Iterable, List, Optional

from database import (
    create_document,
    delete_document,
    delete_documents,
    get_collection,
    get_document,
    get_documents,
    serialize_doc,
    to_object_id,
    update_document,
)
from errors import DuplicateError, InvalidIdError, NotFoundError, ValidationFailed
from logger import get_logger
from schemas import (
    District,
    DistrictUpdate,
    Partial,
    StampCategory,
    StampCategoryUpdate,
    StampProduct,
    StampProductUpdate,
    State,
    StateUpdate,
    Tehsil,
    TehsilUpdate,
)

logger = get_logger(__name__)

STATES = "states"
DISTRICTS = "districts"
TEHSILS = "tehsils"
CATEGORIES = "stampCategories"
PRODUCTS = "stampProducts"


# -------------------------
# Shared helpers
# -------------------------

def _search_filter(search: Optional[str], fields: Iterable[str]) -> Dict[str, Any]:
    if not search or not search.strip():
        return {}
    pattern = re.escape(search.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def _list(collection: str, query: Dict[str, Any], search: Optional[str], fields: Iterable[str]) -> List[dict]:
    search_query = _search_filter(search, fields)
    if search_query:
        query = {"$and": [query, search_query]} if query else search_query
    items = get_documents(collection, query, sort=[("name", 1)])
    return [serialize_doc(it) for it in items]


def _get(collection: str, resource: str, id: str) -> dict:
    doc = get_document(collection, id)
    if not doc:
        raise NotFoundError(resource, id)
    return serialize_doc(doc)


def _create(collection: str, payload) -> dict:
    new_id = create_document(collection, payload)
    return serialize_doc(get_document(collection, new_id))


def _update(collection: str, resource: str, id: str, payload: Partial) -> dict:
    data = payload.changes()
    if not data:
        raise ValidationFailed("No fields to update")
    if not update_document(collection, id, data):
        raise NotFoundError(resource, id)
    return serialize_doc(get_document(collection, id))


def _delete(collection: str, resource: str, id: str) -> None:
    if not delete_document(collection, id):
        raise NotFoundError(resource, id)


# -------------------------
# States
# -------------------------

def _ensure_unique_code(code: str, exclude_id: Optional[str] = None):
    query: Dict[str, Any] = {"code": code}
    if exclude_id:
        query["_id"] = {"$ne": to_object_id(exclude_id)}
    if get_collection(STATES).find_one(query):
        raise DuplicateError("State code already exists")


def list_states(search: Optional[str] = None) -> List[dict]:
    return _list(STATES, {}, search, ("name", "code"))


def get_state(id: str) -> dict:
    return _get(STATES, "State", id)


def create_state(payload: State) -> dict:
    _ensure_unique_code(payload.code)
    return _create(STATES, payload)


def update_state(id: str, payload: StateUpdate) -> dict:
    if payload.code:
        _ensure_unique_code(payload.code, exclude_id=id)
    return _update(STATES, "State", id, payload)


def delete_state(id: str, cascade: bool = False) -> Dict[str, Any]:
    """Delete a state. Its districts and tehsils are removed only when `cascade` is set."""
    _delete(STATES, "State", id)
    result = {"success": True, "districts": 0, "tehsils": 0}
    if cascade:
        district_ids = [str(d["_id"]) for d in get_documents(DISTRICTS, {"stateId": id})]
        if district_ids:
            result["tehsils"] = delete_documents(TEHSILS, {"districtId": {"$in": district_ids}})
        result["districts"] = delete_documents(DISTRICTS, {"stateId": id})
        logger.info(
            f"Cascade delete of state {id}: {result['districts']} districts, {result['tehsils']} tehsils"
        )
    return result


# -------------------------
# Districts
# -------------------------

def list_districts(state_id: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    query = {"stateId": state_id} if state_id else {}
    return _list(DISTRICTS, query, search, ("name",))


def get_district(id: str) -> dict:
    return _get(DISTRICTS, "District", id)


def create_district(payload: District) -> dict:
    return _create(DISTRICTS, payload)


def update_district(id: str, payload: DistrictUpdate) -> dict:
    return _update(DISTRICTS, "District", id, payload)


def delete_district(id: str, cascade: bool = False) -> Dict[str, Any]:
    _delete(DISTRICTS, "District", id)
    result = {"success": True, "tehsils": 0}
    if cascade:
        result["tehsils"] = delete_documents(TEHSILS, {"districtId": id})
        logger.info(f"Cascade delete of district {id}: {result['tehsils']} tehsils")
    return result


# -------------------------
# Tehsils
# -------------------------

def list_tehsils(
    district_id: Optional[str] = None,
    state_id: Optional[str] = None,
    search: Optional[str] = None,
) -> List[dict]:
    query: Dict[str, Any] = {}
    if district_id:
        query["districtId"] = district_id
    elif state_id:
        district_ids = [str(d["_id"]) for d in get_documents(DISTRICTS, {"stateId": state_id})]
        query["districtId"] = {"$in": district_ids}
    return _list(TEHSILS, query, search, ("name",))


def get_tehsil(id: str) -> dict:
    return _get(TEHSILS, "Tehsil", id)


def create_tehsil(payload: Tehsil) -> dict:
    return _create(TEHSILS, payload)


def update_tehsil(id: str, payload: TehsilUpdate) -> dict:
    return _update(TEHSILS, "Tehsil", id, payload)


def delete_tehsil(id: str) -> Dict[str, Any]:
    _delete(TEHSILS, "Tehsil", id)
    return {"success": True}


# -------------------------
# Stamp categories
# -------------------------

def list_categories(search: Optional[str] = None) -> List[dict]:
    return _list(CATEGORIES, {}, search, ("name", "description"))


def get_category(id: str) -> dict:
    return _get(CATEGORIES, "Stamp category", id)


def create_category(payload: StampCategory) -> dict:
    return _create(CATEGORIES, payload)


def update_category(id: str, payload: StampCategoryUpdate) -> dict:
    return _update(CATEGORIES, "Stamp category", id, payload)


def delete_category(id: str) -> Dict[str, Any]:
    # Products pointing at this category are left as they are
    _delete(CATEGORIES, "Stamp category", id)
    return {"success": True}


# -------------------------
# Stamp products
# -------------------------

def list_products(
    state_id: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
) -> List[dict]:
    query: Dict[str, Any] = {}
    if state_id:
        query["stateId"] = state_id
    if category_id:
        query["categoryId"] = category_id
    return _list(PRODUCTS, query, search, ("name", "deliveryTime"))


def get_product(id: str) -> dict:
    return _get(PRODUCTS, "Stamp product", id)


def create_product(payload: StampProduct) -> dict:
    return _create(PRODUCTS, payload)


def update_product(id: str, payload: StampProductUpdate) -> dict:
    return _update(PRODUCTS, "Stamp product", id, payload)


def delete_product(id: str) -> Dict[str, Any]:
    _delete(PRODUCTS, "Stamp product", id)
    return {"success": True}


def exists(collection: str, id: Optional[str]) -> bool:
    """True when `id` is a well-formed id of a document in `collection`."""
    if not id:
        return False
    try:
        return get_document(collection, id) is not None
    except InvalidIdError:
        return False
