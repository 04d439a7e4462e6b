"""AssignmentResolver: edge classification, fallbacks and group expansion."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from core.errors import GROUP_MEMBERSHIP_FETCH, PRINCIPAL_NOT_FOUND, ROLE_NOT_FOUND
from core.models import AssignmentKind, AssignmentSource, Group, PrincipalRef, ServicePrincipal, User
from core.principals import fncBuildPrincipalIndex
from core.resolver import AssignmentResolver, GroupMemberCache
from core.roles import RoleIndex
from fakes import FakeCollector, direct, eligible, role

DIRECT = AssignmentSource(kind=AssignmentKind.DIRECT)
ELIGIBLE = AssignmentSource(kind=AssignmentKind.ELIGIBLE)


def _resolve(c: FakeCollector, **kw):
    principals = fncBuildPrincipalIndex(c.users, c.groups, c.service_principals)
    resolver = AssignmentResolver(
        principals,
        RoleIndex(c.roles),
        fetch_role_definition=c.fetch_role_definition,
        fetch_group_members=c.fetch_group_members,
        **kw,
    )
    return resolver.resolve(c.direct, c.eligible)


def _two_role_collector(**kw) -> FakeCollector:
    """g1 holds r1 directly and eligibly, and r2 directly."""
    defaults = dict(
        users=[User(id="u1", displayName="Ann"), User(id="u2", displayName="Bob")],
        groups=[Group(id="g1", displayName="Admins")],
        roles=[role("r1", "Global Administrator"), role("r2", "User Administrator")],
        direct=[direct("r1", "g1"), direct("r2", "g1")],
        eligible=[eligible("r1", "g1")],
        members={"g1": ["u1", "u2"]},
    )
    defaults.update(kw)
    return FakeCollector(**defaults)


class TestClassification:
    def test_direct_and_eligible_edges_are_mirrored(self) -> None:
        c = FakeCollector(
            users=[User(id="u1")],
            roles=[role("r1")],
            direct=[direct("r1", "u1")],
            eligible=[eligible("r1", "u1")],
        )
        resolved = _resolve(c)
        acc = resolved.roles["r1"]
        assert list(acc.direct) == ["u1"]
        assert list(acc.eligible) == ["u1"]
        assert resolved.principal_roles["u1"]["r1"] == [DIRECT, ELIGIBLE]

    def test_duplicate_assignment_recorded_once(self) -> None:
        c = FakeCollector(users=[User(id="u1")], roles=[role("r1")], direct=[direct("r1", "u1"), direct("r1", "u1")])
        resolved = _resolve(c)
        assert list(resolved.roles["r1"].direct) == ["u1"]
        assert resolved.principal_roles["u1"]["r1"] == [DIRECT]

    def test_unknown_principal_is_skipped_with_warning(self) -> None:
        c = FakeCollector(users=[User(id="u1")], roles=[role("r1")], direct=[direct("r1", "ghost"), direct("r1", "u1")])
        resolved = _resolve(c)
        assert list(resolved.roles["r1"].direct) == ["u1"]
        [diag] = resolved.diagnostics.of_kind(PRINCIPAL_NOT_FOUND)
        assert diag.ref == "ghost"

    def test_unknown_role_is_recovered_by_point_fetch(self) -> None:
        c = FakeCollector(
            users=[User(id="u1"), User(id="u2")],
            roles=[],
            direct=[direct("r9", "u1"), direct("r9", "u2")],
            point_roles=[role("r9", "Late Role")],
        )
        resolved = _resolve(c)
        assert resolved.roles["r9"].role.displayName == "Late Role"
        assert list(resolved.roles["r9"].direct) == ["u1", "u2"]
        assert c.role_lookups["r9"] == 1
        assert not resolved.diagnostics

    def test_unrecoverable_role_drops_only_that_edge(self) -> None:
        c = FakeCollector(
            users=[User(id="u1")],
            roles=[role("r1")],
            direct=[direct("missing", "u1"), direct("r1", "u1")],
            eligible=[eligible("missing", "u1")],
        )
        resolved = _resolve(c)
        assert resolved.principal_roles["u1"] == {"r1": [DIRECT]}
        assert len(resolved.diagnostics.of_kind(ROLE_NOT_FOUND)) == 2
        assert c.role_lookups["missing"] == 1

    def test_groups_are_contributing_not_expanded_inline(self) -> None:
        c = _two_role_collector()
        resolved = _resolve(c, expand_groups=False)
        assert resolved.roles["r1"].contributingGroups == {"g1": {AssignmentKind.DIRECT, AssignmentKind.ELIGIBLE}}
        assert not resolved.roles["r1"].groupDerived
        assert sum(c.group_member_calls.values()) == 0


class TestGroupExpansion:
    def test_scenario_member_inherits_role(self, scenario_collector) -> None:
        resolved = _resolve(scenario_collector)
        via = AssignmentSource(kind=AssignmentKind.DIRECT, viaGroupId="g1", viaGroupName="Admins")
        assert resolved.principal_roles["u2"]["r1"] == [via]
        assert resolved.roles["r1"].derived_only() == ["u2"]
        assert resolved.group_members["g1"][0].id == "u2"

    def test_each_group_fetched_once(self) -> None:
        c = _two_role_collector()
        resolved = _resolve(c)
        assert c.group_member_calls == {"g1": 1}
        assert resolved.group_fetch_count == 1

    def test_direct_and_eligible_via_same_group_kept_distinct(self) -> None:
        c = _two_role_collector()
        resolved = _resolve(c)
        sources = resolved.principal_roles["u1"]["r1"]
        assert [s.label for s in sources] == ["Admins", "Admins (Eligible)"]
        assert [s.label for s in resolved.principal_roles["u1"]["r2"]] == ["Admins"]

    def test_direct_holder_also_in_group_keeps_both_sources(self) -> None:
        c = _two_role_collector(direct=[direct("r1", "g1"), direct("r1", "u1")], eligible=[])
        resolved = _resolve(c)
        assert [s.label for s in resolved.principal_roles["u1"]["r1"]] == ["Direct", "Admins"]
        assert resolved.roles["r1"].derived_only() == ["u2"]

    def test_membership_failure_keeps_group_edges(self) -> None:
        c = _two_role_collector(failing_groups=["g1"])
        resolved = _resolve(c)
        assert list(resolved.roles["r1"].direct) == ["g1"]
        assert "u1" not in resolved.principal_roles
        [diag] = resolved.diagnostics.of_kind(GROUP_MEMBERSHIP_FETCH)
        assert diag.ref == "g1"
        assert c.group_member_calls == {"g1": 1}

    def test_nested_groups_are_holders_but_not_expanded(self) -> None:
        c = FakeCollector(
            users=[User(id="u1")],
            groups=[Group(id="outer", displayName="Outer"), Group(id="inner", displayName="Inner")],
            roles=[role("r1")],
            direct=[direct("r1", "outer")],
            members={"outer": ["inner"], "inner": ["u1"]},
        )
        resolved = _resolve(c)
        assert "inner" in resolved.roles["r1"].groupDerived
        assert "u1" not in resolved.principal_roles
        assert c.group_member_calls == {"outer": 1}

    def test_unknown_member_is_warned_once_per_group(self) -> None:
        c = _two_role_collector(members={"g1": ["u1", "device-1"]})
        resolved = _resolve(c)
        warnings = resolved.diagnostics.of_kind(PRINCIPAL_NOT_FOUND)
        assert [d.ref for d in warnings] == ["device-1"]

    def test_service_principal_members_are_attributed(self) -> None:
        c = FakeCollector(
            groups=[Group(id="g1", displayName="Automation")],
            service_principals=[ServicePrincipal(id="sp1", displayName="Deployer")],
            roles=[role("r1")],
            eligible=[eligible("r1", "g1")],
            members={"g1": ["sp1"]},
        )
        resolved = _resolve(c)
        assert [s.label for s in resolved.principal_roles["sp1"]["r1"]] == ["Automation (Eligible)"]

    def test_parallel_expansion_fetches_each_group_once(self) -> None:
        groups = [Group(id=f"g{i}", displayName=f"Group {i}") for i in range(6)]
        users = [User(id=f"u{i}") for i in range(6)]
        assignments = [direct("r1", g.id) for g in groups] + [direct("r2", g.id) for g in groups]
        c = FakeCollector(
            users=users,
            groups=groups,
            roles=[role("r1"), role("r2")],
            direct=assignments,
            members={g.id: [u.id for u in users] for g in groups},
        )
        resolved = _resolve(c, parallel=4)
        assert c.group_member_calls == {g.id: 1 for g in groups}
        assert len(resolved.roles["r1"].groupDerived) == 6

    def test_expansion_cache_is_per_run(self, scenario_collector) -> None:
        _resolve(scenario_collector)
        _resolve(scenario_collector)
        assert scenario_collector.group_member_calls == {"g1": 2}


class TestGroupMemberCache:
    def test_failure_is_cached(self) -> None:
        calls = []

        def fetch(gid):
            calls.append(gid)
            raise RuntimeError("nope")

        cache = GroupMemberCache(fetch)
        for _ in range(2):
            try:
                cache.get("g1")
            except RuntimeError:
                pass
        assert calls == ["g1"]
        assert cache.fetch_count == 1
        assert cache.snapshot() == {}

    def test_concurrent_callers_share_one_fetch(self) -> None:
        release = threading.Event()

        def slow_fetch(gid):
            release.wait(timeout=5)
            time.sleep(0.05)
            return [PrincipalRef(id="u1")]

        cache = GroupMemberCache(slow_fetch)
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cache.get, "g1") for _ in range(8)]
            release.set()
            results = [f.result() for f in futures]

        assert cache.fetch_count == 1
        assert all([m.id for m in r] == ["u1"] for r in results)
        assert results.count(results[0]) == 8
