from .array_normalizer import ArrayNormalizer, Patch, ElementType
from .entity_store import EntityStore, AnyOf, Not, ArrayContains
from .tenant_validator import TenantIntegrityValidator
from .notification_guard import NotificationGuard
from .cascade_engine import CascadeEngine, CascadeReport
from .commands import CommandService, get_command_service
