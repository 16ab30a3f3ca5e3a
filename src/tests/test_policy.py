"""Role policy, permission evaluator and route table tests (no database)."""

from __future__ import annotations

from types import SimpleNamespace
import uuid

from django.test import SimpleTestCase

from access_control import decisions
from access_control.evaluator import (
    can_access,
    get_accessible_resources,
    has_all_permissions,
    has_any_permission,
    has_minimum_role,
    has_permission,
    is_role_escalation,
)
from access_control.policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_MANAGE,
    ACTION_READ,
    ACTION_UPDATE,
    CRUD_ACTIONS,
    SCOPE_ALL,
    SCOPE_OWN,
    Permission,
    Role,
    expand_permissions,
    get_role_permissions,
    parse_role,
)
from access_control.routes import (
    ROUTE_CLASS_AUTH,
    ROUTE_CLASS_PUBLIC,
    ROUTE_CLASS_SENSITIVE,
    SELF_GUARD_ALWAYS,
    resolve_route,
)


def make_user(role, is_active=True, user_id=None):
    return SimpleNamespace(id=user_id or uuid.uuid4(), role=role, is_active=is_active, is_authenticated=True)


class PolicyTests(SimpleTestCase):
    def test_manage_expands_to_crud_with_scope_all(self):
        """A manage grant stands for create/read/update/delete at scope all."""
        expanded = expand_permissions([Permission("products", ACTION_MANAGE, SCOPE_ALL)])
        self.assertEqual(
            set(expanded),
            {Permission("products", action, SCOPE_ALL) for action in CRUD_ACTIONS},
        )

    def test_manage_own_expands_to_crud_own(self):
        expanded = expand_permissions([Permission("profile", ACTION_MANAGE, SCOPE_OWN)])
        self.assertEqual(set(expanded), {Permission("profile", action, SCOPE_OWN) for action in CRUD_ACTIONS})

    def test_expansion_drops_duplicates_and_keeps_order(self):
        expanded = expand_permissions(
            [Permission("pages", ACTION_READ, SCOPE_ALL), Permission("pages", ACTION_MANAGE, SCOPE_ALL)]
        )
        self.assertEqual(expanded[0], Permission("pages", ACTION_READ, SCOPE_ALL))
        self.assertEqual(len(expanded), len(set(expanded)))

    def test_each_role_declares_its_own_set(self):
        self.assertTrue(get_role_permissions(Role.VIEWER))
        self.assertTrue(get_role_permissions(Role.EDITOR))
        self.assertTrue(get_role_permissions(Role.ADMIN))
        self.assertEqual(get_role_permissions("ROOT"), ())

    def test_parse_role_rejects_unknown_values(self):
        self.assertEqual(parse_role("ADMIN"), Role.ADMIN)
        self.assertIsNone(parse_role("admin"))
        self.assertIsNone(parse_role("SUPERADMIN"))
        self.assertIsNone(parse_role(None))
        self.assertIsNone(parse_role(3))


class EvaluatorTests(SimpleTestCase):
    def test_inactive_or_missing_user_has_no_permissions(self):
        required = Permission("pages", ACTION_READ)
        self.assertFalse(has_permission(None, required))
        self.assertFalse(has_permission(make_user(Role.ADMIN, is_active=False), required))

    def test_malformed_role_is_denied_without_raising(self):
        self.assertFalse(has_permission(make_user("GOD"), Permission("pages", ACTION_READ)))
        self.assertFalse(has_permission(make_user(None), Permission("pages", ACTION_READ)))
        self.assertFalse(has_permission(make_user(Role.ADMIN), "pages:read"))  # type: ignore[arg-type]

    def test_required_manage_needs_every_crud_action(self):
        """Holding create and read on pages is not enough to "manage" pages."""
        editor = make_user(Role.EDITOR)
        admin = make_user(Role.ADMIN)
        self.assertFalse(has_permission(editor, Permission("pages", ACTION_MANAGE, SCOPE_ALL)))
        self.assertTrue(has_permission(editor, Permission("products", ACTION_MANAGE, SCOPE_ALL)))
        self.assertTrue(has_permission(admin, Permission("pages", ACTION_MANAGE, SCOPE_ALL)))

    def test_scope_all_grant_satisfies_scope_own(self):
        editor = make_user(Role.EDITOR)
        self.assertTrue(has_permission(editor, Permission("products", ACTION_UPDATE, SCOPE_OWN)))

    def test_scope_own_grant_does_not_satisfy_scope_all(self):
        editor = make_user(Role.EDITOR)
        self.assertTrue(has_permission(editor, Permission("pages", ACTION_UPDATE, SCOPE_OWN)))
        self.assertFalse(has_permission(editor, Permission("pages", ACTION_UPDATE, SCOPE_ALL)))

    def test_role_level_check_ignores_scope(self):
        viewer = make_user(Role.VIEWER)
        self.assertTrue(has_permission(viewer, Permission("users", ACTION_UPDATE)))
        self.assertFalse(has_permission(viewer, Permission("users", ACTION_DELETE)))

    def test_results_are_deterministic(self):
        editor = make_user(Role.EDITOR)
        required = Permission("pages", ACTION_CREATE, SCOPE_ALL)
        self.assertEqual({has_permission(editor, required) for _ in range(10)}, {True})

    def test_ownership_unlocks_own_scope_only_for_owner(self):
        owner = make_user(Role.EDITOR)
        other = make_user(Role.EDITOR)
        required = Permission("pages", ACTION_UPDATE, SCOPE_OWN)

        self.assertTrue(can_access(owner, required, owner.id))
        self.assertFalse(can_access(other, required, owner.id))
        self.assertFalse(can_access(owner, required, None))

    def test_scope_all_grant_bypasses_ownership(self):
        admin = make_user(Role.ADMIN)
        self.assertTrue(can_access(admin, Permission("pages", ACTION_DELETE, SCOPE_OWN), uuid.uuid4()))

    def test_ownership_is_not_a_bypass(self):
        """Owning a resource does not help when the role has no grant for it."""
        viewer = make_user(Role.VIEWER)
        self.assertFalse(can_access(viewer, Permission("pages", ACTION_UPDATE, SCOPE_OWN), viewer.id))

    def test_owner_ids_compare_as_strings(self):
        editor = make_user(Role.EDITOR)
        self.assertTrue(can_access(editor, Permission("users", ACTION_UPDATE, SCOPE_OWN), str(editor.id)))

    def test_minimum_role_ordering(self):
        ordered = [Role.VIEWER, Role.EDITOR, Role.ADMIN]
        for high_index, high in enumerate(ordered):
            for low in ordered[: high_index + 1]:
                self.assertTrue(has_minimum_role(make_user(high), low), (high, low))
            for higher in ordered[high_index + 1:]:
                self.assertFalse(has_minimum_role(make_user(high), higher), (high, higher))

    def test_minimum_role_with_unknown_role(self):
        self.assertFalse(has_minimum_role(make_user("OWNER"), Role.VIEWER))
        self.assertFalse(has_minimum_role(make_user(Role.ADMIN), "OWNER"))
        self.assertTrue(has_minimum_role("ADMIN", Role.EDITOR))

    def test_any_and_all_helpers(self):
        viewer = make_user(Role.VIEWER)
        read = Permission("pages", ACTION_READ, SCOPE_ALL)
        write = Permission("pages", ACTION_CREATE, SCOPE_ALL)
        self.assertTrue(has_any_permission(viewer, [read, write]))
        self.assertFalse(has_all_permissions(viewer, [read, write]))
        self.assertFalse(has_all_permissions(viewer, []))

    def test_accessible_resources(self):
        self.assertNotIn("audit", get_accessible_resources(make_user(Role.EDITOR)))
        self.assertIn("audit", get_accessible_resources(make_user(Role.ADMIN)))

    def test_role_escalation(self):
        self.assertTrue(is_role_escalation(Role.VIEWER, Role.ADMIN))
        self.assertFalse(is_role_escalation(Role.ADMIN, Role.EDITOR))
        self.assertFalse(is_role_escalation("NOPE", Role.ADMIN))


class RouteTableTests(SimpleTestCase):
    def test_login_is_public_auth_route(self):
        route = resolve_route("/api/auth/login/")
        self.assertTrue(route.rule.public)
        self.assertEqual(route.rule.route_class, ROUTE_CLASS_AUTH)

    def test_role_change_route_guards_self(self):
        user_id = str(uuid.uuid4())
        route = resolve_route(f"/api/admin/users/{user_id}/role/")
        self.assertEqual(route.rule.self_guard, SELF_GUARD_ALWAYS)
        self.assertEqual(route.rule.minimum_role, Role.ADMIN)
        self.assertEqual(route.target_id, user_id)
        self.assertEqual(route.rule.required_permissions("PUT"), (Permission("users", ACTION_MANAGE, SCOPE_ALL),))

    def test_head_and_options_use_get_permissions(self):
        route = resolve_route("/api/pages/")
        self.assertEqual(route.rule.required_permissions("HEAD"), route.rule.required_permissions("GET"))
        self.assertEqual(route.rule.required_permissions("OPTIONS"), route.rule.required_permissions("GET"))

    def test_unlisted_method_is_not_allowed(self):
        route = resolve_route("/api/admin/audit-logs/")
        self.assertIsNone(route.rule.required_permissions("DELETE"))

    def test_unknown_paths_require_authentication(self):
        route = resolve_route("/api/unknown/thing")
        self.assertTrue(route.rule.auth_only)
        self.assertEqual(route.rule.route_class, ROUTE_CLASS_PUBLIC)
        self.assertEqual(resolve_route("/api/admin/unknown").rule.route_class, ROUTE_CLASS_SENSITIVE)

    def test_decision_constructors(self):
        denied = decisions.unauthorized("authentication_required")
        self.assertEqual(denied.status, 401)
        self.assertEqual(denied.code, decisions.CODE_UNAUTHORIZED)
        self.assertFalse(denied.allowed)
        forbidden = decisions.forbidden("permission_denied")
        self.assertEqual(forbidden.status, 403)
        self.assertEqual(forbidden.classification, decisions.PERMISSION_DENIED)
        self.assertTrue(decisions.Allowed().allowed)
