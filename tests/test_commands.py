# tests/test_commands.py: Command surface: create, update, delete, reads
from datetime import datetime, timezone

import pytest

from taskgraph.errors import (
    AccountInactive, EntityDeleted, EntityNotFound, InvalidPayload, TenantIntegrityViolation, UniquenessConflict,
)
from taskgraph.models import EntityKind, IndustrySize, IndustryType, TaskPriority, TaskStatus, TaskType, UserRole
from taskgraph.services.array_normalizer import Patch


class TestCreate:
    def test_tenant_and_creator_come_from_the_context(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.member)
        task = service.get(EntityKind.ROUTINE_TASK, task_id, graph.member)
        assert task["organization_id"] == graph.org1
        assert task["department_id"] == graph.d1
        assert task["created_by_id"] == graph.u2
        assert task["task_type"] == TaskType.ROUTINE

    def test_routine_defaults(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        task = service.get(EntityKind.ROUTINE_TASK, task_id, graph.admin)
        assert task["status"] == TaskStatus.COMPLETED
        assert task["priority"] == TaskPriority.MEDIUM

    def test_assigned_defaults(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        assert service.get(EntityKind.ASSIGNED_TASK, task_id, graph.admin)["status"] == TaskStatus.TO_DO

    def test_routine_rejects_disallowed_status(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(status="In Progress"), graph.admin)

    def test_routine_rejects_assignees(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(assignees=[graph.u2]), graph.admin)

    def test_assigned_requires_an_assignee(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([]), graph.admin)

    def test_due_date_before_start_date(self, service, graph, payloads):
        payload = payloads.assigned_task([graph.u2], due_date=datetime(2024, 4, 1, tzinfo=timezone.utc))
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ASSIGNED_TASK, payload, graph.admin)

    def test_project_requires_vendor_details(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.PROJECT_TASK, payloads.project_task(vendor_contact=None), graph.admin)

    def test_protected_fields_are_rejected(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(is_deleted=True), graph.admin)

    def test_unknown_fields_are_rejected(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(colour="red"), graph.admin)

    def test_unknown_kind(self, service, graph):
        with pytest.raises(InvalidPayload):
            service.apply_create("Spaceship", {}, graph.admin)

    def test_other_department_needs_super_admin(self, service, graph, payloads):
        payload = payloads.routine_task(department_id=graph.d1b, created_by_id=graph.u4)
        with pytest.raises(TenantIntegrityViolation):
            service.apply_create(EntityKind.ROUTINE_TASK, payload, graph.admin)
        assert service.apply_create(EntityKind.ROUTINE_TASK, payload, graph.super_admin)

    def test_other_organization_is_rejected(self, service, graph, payloads):
        with pytest.raises(TenantIntegrityViolation):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(organization_id=graph.org2), graph.admin)

    def test_notification_recipients_are_deduplicated(self, service, graph, payloads):
        notification_id = service.apply_create(
            EntityKind.NOTIFICATION, payloads.notification([graph.u1, graph.u1, graph.u2]), graph.admin)
        notification = service.get(EntityKind.NOTIFICATION, notification_id, graph.admin)
        assert notification["recipients"] == [graph.u1, graph.u2]

    def test_notification_needs_recipients(self, service, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.NOTIFICATION, payloads.notification([]), graph.admin)

    def test_notification_recipient_from_another_department(self, service, graph, payloads):
        with pytest.raises(TenantIntegrityViolation):
            service.apply_create(EntityKind.NOTIFICATION, payloads.notification([graph.u4]), graph.admin)

    def test_child_lists_are_not_writable(self, service, store, graph, payloads):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(attachments=[999]), graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(materials=[]), graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.TASK_COMMENT, {
                "parent_id": 1, "parent_kind": EntityKind.ROUTINE_TASK, "content": "Hi", "attachments": [1],
            }, graph.admin)
        assert store.count(EntityKind.ROUTINE_TASK) == 0

    def test_organization_creator_is_not_writable(self, service, graph):
        with pytest.raises(InvalidPayload):
            service.apply_create(EntityKind.ORGANIZATION, {
                "name": "Initech", "email": "hello@initech.test", "phone": "+1-555-0100", "address": "2 Side Street",
                "size": IndustrySize.SMALL, "industry": IndustryType.TECHNOLOGY, "created_by_id": graph.u3,
            }, graph.admin)


class TestUpdate:
    def test_push_is_add_if_absent(self, service, store, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u1, graph.u2]), graph.admin)
        service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"push": {"assignees": [graph.u1]}}, graph.admin)
        assert store.find_by_id(EntityKind.ASSIGNED_TASK, task_id)["assignees"] == [graph.u1, graph.u2]

    def test_set_replaces_with_deduplicated_list(self, service, store, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u1]), graph.admin)
        service.apply_update(EntityKind.ASSIGNED_TASK, task_id, Patch.assign(assignees=[graph.u2, graph.u2]), graph.admin)
        assert store.find_by_id(EntityKind.ASSIGNED_TASK, task_id)["assignees"] == [graph.u2]

    def test_pulling_the_last_assignee_breaks_the_variant(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"pull": {"assignees": [graph.u2]}}, graph.admin)

    def test_new_assignee_is_validated(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        with pytest.raises(TenantIntegrityViolation):
            service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"push": {"assignees": [graph.u3]}}, graph.admin)

    def test_scalar_update(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"set": {"status": "In Progress"}}, graph.member)
        assert service.get(EntityKind.ASSIGNED_TASK, task_id, graph.admin)["status"] == TaskStatus.IN_PROGRESS

    def test_deleted_entity_is_immutable(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        service.apply_delete(EntityKind.ROUTINE_TASK, task_id, graph.admin)
        with pytest.raises(EntityDeleted):
            service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"title": "Revived"}}, graph.admin)

    def test_setting_the_flag_routes_through_delete(self, service, store, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        attachment_id = service.apply_create(
            EntityKind.ATTACHMENT, payloads.attachment(task_id, EntityKind.ROUTINE_TASK), graph.admin)

        report = service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"is_deleted": True}}, graph.admin)

        assert report is not None
        assert store.find_by_id(EntityKind.ATTACHMENT, attachment_id)["is_deleted"] is True

    def test_flag_on_deleted_entity_is_a_no_op(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        service.apply_delete(EntityKind.ROUTINE_TASK, task_id, graph.admin)
        assert service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"is_deleted": True}}, graph.admin) is None

    def test_restore_is_rejected(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        service.apply_delete(EntityKind.ROUTINE_TASK, task_id, graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"is_deleted": False}}, graph.admin)

    def test_tenant_keys_are_fixed(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"organization_id": graph.org2}}, graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, task_id, {"set": {"department_id": graph.d1b}}, graph.super_admin)

    def test_user_can_move_department(self, service, store, graph):
        service.apply_update(EntityKind.USER, graph.u2, {"set": {"department_id": graph.d1b}}, graph.super_admin)
        assert store.find_by_id(EntityKind.USER, graph.u2)["department_id"] == graph.d1b

    def test_user_cannot_move_to_another_organizations_department(self, service, graph):
        with pytest.raises(TenantIntegrityViolation):
            service.apply_update(EntityKind.USER, graph.u2, {"set": {"department_id": graph.d2}}, graph.super_admin)

    def test_referenced_user_cannot_move(self, service, store, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        with pytest.raises(TenantIntegrityViolation):
            service.apply_update(EntityKind.USER, graph.u2, {"set": {"department_id": graph.d1b}}, graph.super_admin)
        assert store.find_by_id(EntityKind.USER, graph.u2)["department_id"] == graph.d1

        service.apply_delete(EntityKind.ASSIGNED_TASK, task_id, graph.admin)
        service.apply_update(EntityKind.USER, graph.u2, {"set": {"department_id": graph.d1b}}, graph.super_admin)
        assert store.find_by_id(EntityKind.USER, graph.u2)["department_id"] == graph.d1b

    def test_recipient_cannot_move(self, service, store, graph, payloads):
        service.apply_create(EntityKind.NOTIFICATION, payloads.notification([graph.u2]), graph.admin)
        with pytest.raises(TenantIntegrityViolation):
            service.apply_update(EntityKind.USER, graph.u2, {"set": {"department_id": graph.d1b}}, graph.super_admin)

    def test_child_lists_cannot_be_patched(self, service, store, graph, payloads):
        t1 = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        t2 = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(title="Other"), graph.admin)
        attachment_id = service.apply_create(
            EntityKind.ATTACHMENT, payloads.attachment(t1, EntityKind.ROUTINE_TASK), graph.admin)

        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, t2, {"add_to_set": {"attachments": [attachment_id]}},
                                 graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, t2, {"set": {"attachments": [attachment_id]}}, graph.admin)
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ROUTINE_TASK, t1, {"pull": {"attachments": [attachment_id]}}, graph.admin)

        service.apply_delete(EntityKind.ATTACHMENT, attachment_id, graph.admin)
        for task in store.find_many(EntityKind.ROUTINE_TASK):
            assert attachment_id not in task["attachments"]

    def test_task_survives_losing_its_only_assignee(self, service, store, graph, payloads):
        task_id = service.apply_create(EntityKind.ASSIGNED_TASK, payloads.assigned_task([graph.u2]), graph.admin)
        service.apply_delete(EntityKind.USER, graph.u2, graph.admin)

        task = store.find_by_id(EntityKind.ASSIGNED_TASK, task_id)
        assert task["is_deleted"] is False
        assert task["assignees"] == []

        service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"set": {"title": "Fix boiler again"}}, graph.admin)
        assert store.find_by_id(EntityKind.ASSIGNED_TASK, task_id)["title"] == "Fix boiler again"
        with pytest.raises(InvalidPayload):
            service.apply_update(EntityKind.ASSIGNED_TASK, task_id, {"set": {"assignees": []}}, graph.admin)


class TestReads:
    def test_missing_entity(self, service, graph):
        with pytest.raises(EntityNotFound):
            service.get(EntityKind.ROUTINE_TASK, 404, graph.admin)

    def test_wrong_variant_is_not_found(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        with pytest.raises(EntityNotFound):
            service.get(EntityKind.PROJECT_TASK, task_id, graph.admin)

    def test_other_organization_cannot_read(self, service, graph, payloads):
        task_id = service.apply_create(EntityKind.ROUTINE_TASK, payloads.routine_task(), graph.admin)
        with pytest.raises(TenantIntegrityViolation):
            service.get(EntityKind.ROUTINE_TASK, task_id, graph.outsider)

    def test_password_hash_is_never_returned(self, service, graph):
        user = service.get(EntityKind.USER, graph.u2, graph.admin)
        assert "hashed_password" not in user
        assert user["email"] == "bob@example.test"


class TestMarkRead:
    def test_recipient_receipt_is_recorded_once(self, service, graph, payloads):
        notification_id = service.apply_create(
            EntityKind.NOTIFICATION, payloads.notification([graph.u2]), graph.admin)
        service.mark_read(notification_id, graph.member)
        service.mark_read(notification_id, graph.member)
        read_by = service.get(EntityKind.NOTIFICATION, notification_id, graph.admin)["read_by"]
        assert [receipt["user"] for receipt in read_by] == [graph.u2]

    def test_non_recipient_is_rejected(self, service, graph, payloads):
        notification_id = service.apply_create(
            EntityKind.NOTIFICATION, payloads.notification([graph.u2]), graph.admin)
        with pytest.raises(TenantIntegrityViolation):
            service.mark_read(notification_id, graph.admin)

    def test_deleted_notification(self, service, graph, payloads):
        notification_id = service.apply_create(
            EntityKind.NOTIFICATION, payloads.notification([graph.u2]), graph.admin)
        service.apply_delete(EntityKind.NOTIFICATION, notification_id, graph.admin)
        with pytest.raises(EntityDeleted):
            service.mark_read(notification_id, graph.member)


def registration():
    organization = {
        "name": "Initech",
        "email": "hello@initech.test",
        "phone": "+1-555-0100",
        "address": "2 Side Street",
        "size": IndustrySize.MEDIUM,
        "industry": IndustryType.HOSPITALITY,
    }
    department = {"name": "Front desk", "description": "Guest reception"}
    admin = {
        "first_name": "Peter",
        "last_name": "Gibbons",
        "position": "Manager",
        "email": "peter@initech.test",
        "hashed_password": "not-a-real-hash",
    }
    return organization, department, admin


class TestRegisterOrganization:
    def test_creates_the_tenant_and_its_super_admin(self, service, store):
        ids = service.register_organization(*registration())

        user = store.find_by_id(EntityKind.USER, ids["user_id"])
        assert user["role"] == UserRole.SUPER_ADMIN
        assert user["organization_id"] == ids["organization_id"]
        assert user["department_id"] == ids["department_id"]
        assert store.find_by_id(EntityKind.DEPARTMENT, ids["department_id"])["organization_id"] == ids["organization_id"]
        assert store.find_by_id(EntityKind.ORGANIZATION, ids["organization_id"])["created_by_id"] == ids["user_id"]

        tenant = service.resolve_tenant(ids["user_id"])
        assert tenant.role == UserRole.SUPER_ADMIN
        assert tenant.can_cross_departments

    def test_is_all_or_nothing(self, service, store, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("write failed")

        monkeypatch.setattr(service.store, "update_many", fail)
        with pytest.raises(RuntimeError):
            service.register_organization(*registration())
        monkeypatch.undo()

        assert store.count(EntityKind.ORGANIZATION, {"name": "Initech"}) == 0
        assert store.count(EntityKind.DEPARTMENT, {"name": "Front desk"}) == 0
        assert store.count(EntityKind.USER, {"email": "peter@initech.test"}) == 0

    def test_admin_cannot_pick_a_role(self, service):
        organization, department, admin = registration()
        with pytest.raises(InvalidPayload):
            service.register_organization(organization, department, {**admin, "role": UserRole.USER})

    def test_duplicate_organization(self, service, graph):
        organization, department, admin = registration()
        with pytest.raises(UniquenessConflict):
            service.register_organization({**organization, "name": "Acme"}, department, admin)


class TestResolveTenant:
    def test_context_comes_from_the_user_row(self, service, graph):
        tenant = service.resolve_tenant(graph.u1)
        assert tenant.organization_id == graph.org1
        assert tenant.department_id == graph.d1
        assert tenant.user_id == graph.u1
        assert tenant.role == UserRole.ADMIN

    def test_missing_user(self, service, graph):
        with pytest.raises(AccountInactive) as exc_info:
            service.resolve_tenant(404)
        assert exc_info.value.code == "USER_NOT_FOUND_ERROR"

    def test_deleted_user(self, service, graph):
        service.apply_delete(EntityKind.USER, graph.u2, graph.admin)
        with pytest.raises(AccountInactive) as exc_info:
            service.resolve_tenant(graph.u2)
        assert exc_info.value.code == "USER_DELETED_ERROR"

    def test_deleted_department(self, service, store, graph):
        store.update_many(EntityKind.DEPARTMENT, {"id": graph.d1b}, Patch.assign(is_deleted=True))
        with pytest.raises(AccountInactive) as exc_info:
            service.resolve_tenant(graph.u4)
        assert exc_info.value.code == "DEPARTMENT_DELETED_ERROR"

    def test_deleted_organization(self, service, store, graph):
        store.update_many(EntityKind.ORGANIZATION, {"id": graph.org2}, Patch.assign(is_deleted=True))
        with pytest.raises(AccountInactive) as exc_info:
            service.resolve_tenant(graph.u3)
        assert exc_info.value.code == "ORGANIZATION_DELETED_ERROR"
