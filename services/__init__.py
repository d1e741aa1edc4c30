"""
Business logic services.

Each service handles one domain area.
"""

from services.permission_service import (
    ROLE_CAPABILITIES,
    resolve_permissions,
    has_permission,
    check_permission,
)
from services.pricing_record_service import PricingRecordService, get_pricing_record_service
from services.search_service import (
    SearchService,
    get_search_service,
    classify_search_term,
    merge_unique,
)
from services.ingestion_service import IngestionService, get_ingestion_service
from services.record_editor_service import RecordEditorService, get_record_editor_service
from services.user_service import UserService, get_user_service
from services.change_feed_service import ChangeFeed, get_change_feed

__all__ = [
    "ROLE_CAPABILITIES",
    "resolve_permissions",
    "has_permission",
    "check_permission",
    "PricingRecordService",
    "get_pricing_record_service",
    "SearchService",
    "get_search_service",
    "classify_search_term",
    "merge_unique",
    "IngestionService",
    "get_ingestion_service",
    "RecordEditorService",
    "get_record_editor_service",
    "UserService",
    "get_user_service",
    "ChangeFeed",
    "get_change_feed",
]
