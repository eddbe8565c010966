"""
Website Repository - Data Access Layer for the website document store

The public website keeps its records (coupons, customers, influencers,
commissions, service bookings, payment links, service pricing) as JSON
documents in Supabase
tables. Every table has a text primary key `id` and a `created_at`
timestamp; the remaining columns are the document fields.

Author: Back Office Team
Date: 2025-11-11
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from supabase import Client

from backoffice.core.database import get_supabase

logger = logging.getLogger(__name__)

COUPONS = "coupons"
CUSTOMERS = "customers"
INFLUENCERS = "influencers"
COMMISSIONS = "commissions"
SERVICE_BOOKINGS = "service_bookings"
PAYMENT_LINKS = "payment_links"
SERVICE_PRICING_CONFIGS = "service_pricing_configs"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WebsiteRepository:
    """
    Repository for website documents

    Query results are plain dicts. Filters are equality matches; list_page
    pages by `created_at` descending with the last seen value as cursor.
    """

    def __init__(self, client: Client):
        self.client = client

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        response = self.client.table(collection).select("*").eq("id", doc_id).limit(1).execute()
        return response.data[0] if response.data else None

    def find(self, collection: str, filters: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict]:
        query = self.client.table(collection).select("*")
        for field, value in (filters or {}).items():
            query = query.eq(field, value)
        query = query.order("created_at", desc=True)
        if limit:
            query = query.limit(limit)
        return query.execute().data or []

    def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict]:
        rows = self.find(collection, filters, limit=1)
        return rows[0] if rows else None

    def search(self, collection: str, fields: List[str], term: str, limit: int = 20) -> List[Dict]:
        """Case-insensitive substring match on any of the given fields"""
        pattern = f"%{term}%"
        condition = ",".join(f"{field}.ilike.{pattern}" for field in fields)
        response = (
            self.client.table(collection)
            .select("*")
            .or_(condition)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def list_page(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
        overlaps: Optional[Tuple[str, List[str]]] = None,
    ) -> Tuple[List[Dict], Optional[str]]:
        """
        One page of documents, newest first.

        Args:
            overlaps: (array_field, values) keeps documents whose array field
                shares at least one value with `values`

        Returns:
            (documents, next_cursor); next_cursor is None on the last page
        """
        query = self.client.table(collection).select("*")
        for field, value in (filters or {}).items():
            query = query.eq(field, value)
        if overlaps:
            field, values = overlaps
            query = query.overlaps(field, values)
        if cursor:
            query = query.lt("created_at", cursor)

        rows = query.order("created_at", desc=True).limit(limit + 1).execute().data or []
        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = rows[-1]["created_at"] if has_more and rows else None
        return rows, next_cursor

    def insert(self, collection: str, document: Dict) -> Dict:
        doc = dict(document)
        doc.setdefault("id", uuid.uuid4().hex)
        doc.setdefault("created_at", now_iso())
        response = self.client.table(collection).insert(doc).execute()
        logger.debug(f"Inserted {collection}/{doc['id']}")
        return response.data[0] if response.data else doc

    def update(self, collection: str, doc_id: str, changes: Dict) -> Optional[Dict]:
        response = self.client.table(collection).update(changes).eq("id", doc_id).execute()
        return response.data[0] if response.data else None

    def delete(self, collection: str, doc_id: str) -> bool:
        response = self.client.table(collection).delete().eq("id", doc_id).execute()
        return bool(response.data)


def get_website_repository(client: Client = Depends(get_supabase)) -> WebsiteRepository:
    """FastAPI dependency; tests override it with an in-memory store"""
    return WebsiteRepository(client)
