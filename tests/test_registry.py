import pytest

from apps.chat import registry
from apps.chat.exceptions import AlreadyTracked, NotTracked, ValidationError
from apps.chat.models import TrackedChannelSet

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize(
    "raw, expected",
    [("Foo", "foo"), ("  #BarBaz ", "barbaz"), ("#", ""), ("   ", ""), (None, "")],
)
def test_normalize_channel_name(raw, expected):
    assert registry.normalize_channel_name(raw) == expected


def test_tracked_channels_empty_without_record(tenant):
    assert registry.tracked_channels(tenant) == set()


def test_add_and_remove_reflect_net_effect(tenant):
    assert registry.add_channel(tenant, "#Foo") == {"foo"}
    assert registry.add_channel(tenant, "bar") == {"foo", "bar"}
    assert registry.remove_channel(tenant, "FOO") == {"bar"}
    assert registry.add_channel(tenant, "foo") == {"bar", "foo"}
    assert registry.tracked_channels(tenant) == {"bar", "foo"}

    stored = TrackedChannelSet.objects.get(tenant=tenant).channels
    assert sorted(stored) == ["bar", "foo"]
    assert len(stored) == len(set(stored))


def test_duplicate_add_is_rejected(tenant):
    registry.add_channel(tenant, "foo")
    with pytest.raises(AlreadyTracked):
        registry.add_channel(tenant, " #FOO")
    assert TrackedChannelSet.objects.get(tenant=tenant).channels == ["foo"]


@pytest.mark.parametrize("raw", ["", "#", "   ", None])
def test_empty_name_is_rejected(tenant, raw):
    with pytest.raises(ValidationError):
        registry.add_channel(tenant, raw)
    with pytest.raises(ValidationError):
        registry.remove_channel(tenant, raw)


def test_removing_untracked_channel_leaves_state_unchanged(tenant):
    registry.add_channel(tenant, "foo")
    with pytest.raises(NotTracked):
        registry.remove_channel(tenant, "bar")
    assert registry.tracked_channels(tenant) == {"foo"}


def test_removing_without_any_record(tenant):
    with pytest.raises(NotTracked):
        registry.remove_channel(tenant, "foo")


def test_mutation_bumps_updated_at(tenant):
    registry.add_channel(tenant, "foo")
    first = TrackedChannelSet.objects.get(tenant=tenant).updated_at
    registry.add_channel(tenant, "bar")
    assert TrackedChannelSet.objects.get(tenant=tenant).updated_at >= first


def test_required_channels_is_union_across_tenants(make_tenant):
    alice, bob = make_tenant(), make_tenant()
    registry.add_channel(alice, "foo")
    registry.add_channel(alice, "bar")
    registry.add_channel(bob, "bar")
    registry.add_channel(bob, "baz")
    assert registry.all_required_channels() == {"foo", "bar", "baz"}


def test_shared_channel_does_not_grow_union(make_tenant):
    alice, bob = make_tenant(), make_tenant()
    registry.add_channel(alice, "foo")
    before = registry.all_required_channels()
    registry.add_channel(bob, "foo")
    assert registry.all_required_channels() == before == {"foo"}


def test_deleting_tenant_removes_its_tracking(make_tenant):
    alice, bob = make_tenant(), make_tenant()
    registry.add_channel(alice, "foo")
    registry.add_channel(bob, "bar")
    alice.delete()
    assert registry.all_required_channels() == {"bar"}
