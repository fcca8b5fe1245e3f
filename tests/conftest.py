"""测试配置和共享 Fixtures。"""

from datetime import datetime, timedelta, timezone

import pytest

from skillswap.models import Profile
from skillswap.services import (
    ConversationManager,
    InMemoryDocumentStore,
    MatchService,
    ProfileService,
    StaticIdentityProvider,
    StoreError,
)


# ============================================================================
# Store Doubles
# ============================================================================

class FlakyDocumentStore(InMemoryDocumentStore):
    """测试用可失败的文档存储。

    设置 fail_reads / fail_writes 来模拟网络故障。
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.fail_reads = False
        self.fail_writes = False
        self.read_count = 0
        self.write_count = 0

    def get_all(self, collection, filters=()):
        self.read_count += 1
        if self.fail_reads:
            raise StoreError("Mock store unreachable")
        return super().get_all(collection, filters)

    def get(self, collection, doc_id):
        self.read_count += 1
        if self.fail_reads:
            raise StoreError("Mock store unreachable")
        return super().get(collection, doc_id)

    def put(self, collection, doc_id, record, *, merge=True):
        self.write_count += 1
        if self.fail_writes:
            raise StoreError("Mock store unreachable")
        return super().put(collection, doc_id, record, merge=merge)

    def append(self, collection, record, *, timestamp_field="timestamp"):
        self.write_count += 1
        if self.fail_writes:
            raise StoreError("Mock store unreachable")
        return super().append(collection, record, timestamp_field=timestamp_field)


class FrozenClock:
    """返回固定时间的时钟，可以手动前进或后退。"""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


# ============================================================================
# Profile Fixtures
# ============================================================================

def make_profile(user_id, teach=(), learn=(), **kwargs) -> Profile:
    """创建测试 Profile。"""
    return Profile(
        id=user_id,
        display_name=kwargs.pop("display_name", user_id.title()),
        skills_to_teach=set(teach),
        skills_to_learn=set(learn),
        **kwargs,
    )


@pytest.fixture
def profile_factory():
    """返回 make_profile 工厂函数。"""
    return make_profile


@pytest.fixture
def viewer() -> Profile:
    """示例 viewer：会教 Cooking/Hindi，想学 Photography。"""
    return make_profile("viewer", teach={"Cooking", "Hindi"}, learn={"Photography"})


@pytest.fixture
def candidate_a() -> Profile:
    """会教 Photography，想学 Cooking（得分 2）。"""
    return make_profile("alice", teach={"Photography"}, learn={"Cooking"}, location="Pune")


@pytest.fixture
def candidate_b() -> Profile:
    """只想学 Hindi（得分 1）。"""
    return make_profile("bob", teach=set(), learn={"Hindi"})


@pytest.fixture
def empty_viewer() -> Profile:
    """没有任何技能的 viewer（用于边界测试）。"""
    return make_profile("newbie")


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(clock) -> FlakyDocumentStore:
    """创建内存文档存储。"""
    return FlakyDocumentStore(clock=clock)


@pytest.fixture
def identity() -> StaticIdentityProvider:
    """当前登录用户为 viewer。"""
    return StaticIdentityProvider("viewer")


@pytest.fixture
def seeded_store(store, viewer, candidate_a, candidate_b) -> FlakyDocumentStore:
    """写入 viewer、alice、bob 三个用户。"""
    for profile in (viewer, candidate_a, candidate_b):
        store.put("users", profile.id, profile.to_dict(), merge=False)
    return store


@pytest.fixture
def profile_service(store, identity) -> ProfileService:
    return ProfileService(store, identity, enforce_catalog=True)


@pytest.fixture
def match_service(seeded_store, identity) -> MatchService:
    return MatchService(seeded_store, identity)


@pytest.fixture
def manager(seeded_store, identity) -> ConversationManager:
    return ConversationManager(seeded_store, identity)
