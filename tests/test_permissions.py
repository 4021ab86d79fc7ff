"""Unit tests for docvault.security.permissions — FolderPermissionResolver."""

import pytest

from builders import make_folder
from docvault.documents.stores import InMemoryFolderStore
from docvault.engine.context import ActorContext
from docvault.engine.errors import DocVaultNotFoundError, DocVaultSecurityError
from docvault.security.permissions import (
    AccessDecision,
    FolderPermissionResolver,
    build_folder_tree,
)


@pytest.fixture
def resolver(folder_store):
    return FolderPermissionResolver(folder_store)


class TestCheckAccess:

    def test_permission_list_example(self, resolver):
        folder = make_folder("F", is_restricted=True, allowed=[], permissions=["u2"])
        assert resolver.check_access(folder, "u2", "employee") is AccessDecision.GRANTED
        assert resolver.check_access(folder, "u3", "employee") is AccessDecision.DENIED
        assert resolver.check_access(folder, "u3", "admin") is AccessDecision.GRANTED

    def test_restricted_allow_list(self, resolver):
        folder = make_folder("F", created_by="u1", is_restricted=True, allowed=["u2"])
        assert resolver.check_access(folder, "u2", "employee") is AccessDecision.GRANTED
        assert resolver.check_access(folder, "u3", "employee") is AccessDecision.DENIED
        assert resolver.check_access(folder, "admin1", "admin") is AccessDecision.GRANTED
        assert resolver.check_access(folder, "u1", "employee") is AccessDecision.GRANTED

    def test_unrestricted_is_open(self, resolver):
        assert resolver.check_access(make_folder("F"), "anyone", "employee")

    def test_permission_entry_grants(self, resolver):
        folder = make_folder("F", is_restricted=True, allowed=[], permissions=["u7"])
        assert resolver.check_access(folder, "u7", "employee")

    def test_decision_is_falsy_when_denied(self, resolver):
        folder = make_folder("F", is_restricted=True, allowed=[])
        assert not resolver.check_access(folder, "u3", "employee")

    def test_no_ancestor_walk(self, resolver):
        child = make_folder("child", "parent")
        assert resolver.check_access(child, "u3", "employee")


class TestModifyAndDelete:

    def test_can_modify(self, resolver, alice, bob, admin):
        folder = make_folder("F", created_by="u1", permissions=["u9"])
        assert resolver.can_modify(folder, alice)
        assert resolver.can_modify(folder, admin)
        assert not resolver.can_modify(folder, bob)
        assert resolver.can_modify(folder, ActorContext(user_id="u9"))

    def test_can_delete_legacy_open(self, resolver, bob):
        assert resolver.can_delete(make_folder("F"), bob)

    def test_can_delete_unrestricted_with_allow_list(self, resolver, bob, mallory):
        folder = make_folder("F", allowed=["u2"])
        assert resolver.can_delete(folder, bob)
        assert not resolver.can_delete(folder, mallory)

    def test_can_delete_restricted_requires_owner(self, resolver, bob, alice):
        folder = make_folder("F", created_by="u1", is_restricted=True, allowed=["u2"])
        assert not resolver.can_delete(folder, bob)
        assert resolver.can_delete(folder, alice)

    def test_require_raises_security_error(self, resolver, mallory):
        folder = make_folder("F", is_restricted=True, allowed=[])
        with pytest.raises(DocVaultSecurityError) as exc_info:
            resolver.require(False, folder, mallory, "delete")
        assert exc_info.value.user_id == "u3"
        assert exc_info.value.required_permission == "delete"
        assert exc_info.value.object_ref == "folders.F"

    def test_require_passes(self, resolver, mallory):
        resolver.require(True, make_folder("F"), mallory, "delete")


class TestListing:

    @pytest.mark.asyncio
    async def test_get_folder_missing(self, resolver):
        with pytest.raises(DocVaultNotFoundError) as exc_info:
            await resolver.get_folder("ghost")
        assert exc_info.value.record_id == "ghost"

    @pytest.mark.asyncio
    async def test_list_accessible_filters_each_folder(self):
        store = InMemoryFolderStore([
            make_folder("open"),
            make_folder("secret", is_restricted=True, allowed=["u2"]),
            make_folder("mine", created_by="u3", is_restricted=True, allowed=[]),
        ])
        resolver = FolderPermissionResolver(store)
        ids = sorted(f.id for f in await resolver.list_accessible_folders("u3", "employee"))
        assert ids == ["mine", "open"]
        assert len(await resolver.list_accessible_folders("x", "admin")) == 3

    @pytest.mark.asyncio
    async def test_accessible_tree_promotes_orphans(self):
        store = InMemoryFolderStore([
            make_folder("secret", is_restricted=True, allowed=[]),
            make_folder("inner", "secret"),
        ])
        resolver = FolderPermissionResolver(store)
        roots = await resolver.accessible_folder_tree("u3", "employee")
        assert [n.id for n in roots] == ["inner"]

    @pytest.mark.asyncio
    async def test_get_access_control(self):
        store = InMemoryFolderStore([make_folder("F", is_restricted=True, allowed=["u9", "u2"])])
        settings = await FolderPermissionResolver(store).get_access_control("F")
        assert settings["is_restricted"] is True
        assert settings["allowed_user_ids"] == ["u2", "u9"]
        assert settings["permissions"] == []


class TestBuildFolderTree:

    def test_siblings_sorted_case_insensitive(self):
        roots = build_folder_tree([
            make_folder("r"),
            make_folder("1", "r", name="beta"),
            make_folder("2", "r", name="Alpha"),
            make_folder("3", "r", name="gamma"),
        ])
        assert [n.folder.name for n in roots[0].children] == ["Alpha", "beta", "gamma"]

    def test_nested_to_dict(self):
        roots = build_folder_tree([make_folder("r"), make_folder("c", "r")])
        d = roots[0].to_dict()
        assert d["id"] == "r"
        assert d["children"][0]["id"] == "c"
        assert d["children"][0]["children"] == []

    def test_cycle_members_promoted(self):
        roots = build_folder_tree([make_folder("p", "q"), make_folder("q", "p")])
        ids = set()
        stack = list(roots)
        while stack:
            node = stack.pop()
            assert node.id not in ids
            ids.add(node.id)
            stack.extend(node.children)
        assert ids == {"p", "q"}

    def test_self_parent_is_root(self):
        roots = build_folder_tree([make_folder("x", "x")])
        assert [n.id for n in roots] == ["x"]
        assert roots[0].children == []

    def test_staticmethod_alias(self, resolver):
        assert [n.id for n in resolver.build_folder_tree([make_folder("a")])] == ["a"]
