"""DocumentStore 单元测试。

测试覆盖:
- 合并写入 / 覆盖写入
- 过滤查询
- append 分配 id 与单调时间戳
- 订阅：初始快照、变更推送、取消、断开
- JSON 文件持久化
"""

import threading
from datetime import datetime

import pytest

from skillswap.services import Filter, InMemoryDocumentStore, JsonFileDocumentStore, StoreError


class TestReadsAndWrites:
    """测试基本读写。"""

    def test_put_merge_keeps_other_fields(self, store):
        """测试 merge 写入不会清除未提供的字段。"""
        store.put("users", "u1", {"displayName": "Ann", "credits": 10})
        store.put("users", "u1", {"location": "Delhi"}, merge=True)

        record = store.get("users", "u1")

        assert record == {"id": "u1", "displayName": "Ann", "credits": 10, "location": "Delhi"}

    def test_put_without_merge_replaces(self, store):
        """测试非 merge 写入会整体替换。"""
        store.put("users", "u1", {"displayName": "Ann", "credits": 10})
        store.put("users", "u1", {"displayName": "Ann B"}, merge=False)

        assert store.get("users", "u1") == {"id": "u1", "displayName": "Ann B"}

    def test_get_missing_returns_none(self, store):
        assert store.get("users", "nobody") is None

    def test_returned_records_are_copies(self, store):
        """测试返回的记录修改不会影响存储。"""
        store.put("users", "u1", {"displayName": "Ann"})

        record = store.get("users", "u1")
        record["displayName"] = "Changed"

        assert store.get("users", "u1")["displayName"] == "Ann"

    def test_get_all_filters(self, store):
        """测试 ==、!=、array_contains 过滤。"""
        store.put("conversations", "c1", {"participants": ["a", "b"], "kind": "x"})
        store.put("conversations", "c2", {"participants": ["a", "c"], "kind": "y"})
        store.put("conversations", "c3", {"participants": ["b", "c"], "kind": "x"})

        contains_a = store.get_all("conversations", [Filter("participants", "array_contains", "a")])
        kind_x = store.get_all("conversations", [Filter("kind", "==", "x")])
        not_x = store.get_all("conversations", [Filter("kind", "!=", "x")])

        assert [r["id"] for r in contains_a] == ["c1", "c2"]
        assert [r["id"] for r in kind_x] == ["c1", "c3"]
        assert [r["id"] for r in not_x] == ["c2"]

    def test_not_equal_matches_records_without_field(self, store):
        """测试缺少字段的记录视为 None，会通过 != 过滤。"""
        store.put("users", "u1", {"uid": "u1"})
        store.put("users", "legacy", {"displayName": "No uid"})

        records = store.get_all("users", [Filter("uid", "!=", "u1")])

        assert [r["id"] for r in records] == ["legacy"]

    def test_unknown_filter_op(self):
        with pytest.raises(ValueError):
            Filter("kind", ">", 1)


class TestAppend:
    """测试 append。"""

    def test_append_assigns_id_and_timestamp(self, store, clock):
        """测试 append 返回新 id 和服务器时间戳。"""
        doc_id, timestamp = store.append("log", {"text": "hi"})

        record = store.get("log", doc_id)
        assert record["timestamp"] == timestamp == clock.now
        assert record["text"] == "hi"

    def test_append_custom_timestamp_field(self, store):
        doc_id, timestamp = store.append("conversations", {"participants": ["a", "b"]}, timestamp_field="createdAt")

        assert store.get("conversations", doc_id)["createdAt"] == timestamp

    def test_timestamps_never_go_backwards(self, store, clock):
        """测试时钟回拨时时间戳仍然单调不减。"""
        _, first = store.append("log", {"n": 1})
        clock.advance(-30)
        _, second = store.append("log", {"n": 2})

        assert second >= first


class TestSubscribe:
    """测试订阅与变更推送。"""

    def test_initial_snapshot_and_updates(self, store, clock):
        """测试订阅后立即收到初始快照，每次变更收到完整有序快照。"""
        snapshots = []
        store.append("log", {"n": 1})

        store.subscribe("log", snapshots.append, order_by="timestamp")
        clock.advance(1)
        store.append("log", {"n": 2})

        assert [[r["n"] for r in s] for s in snapshots] == [[1], [1, 2]]

    def test_equal_timestamps_keep_write_order(self, store):
        """测试时间戳相同时按写入顺序排序。"""
        snapshots = []
        store.subscribe("log", snapshots.append, order_by="timestamp")

        for n in range(5):
            store.append("log", {"n": n})

        assert [r["n"] for r in snapshots[-1]] == [0, 1, 2, 3, 4]

    def test_other_collections_do_not_notify(self, store):
        snapshots = []
        store.subscribe("log", snapshots.append)

        store.append("other", {"n": 1})

        assert len(snapshots) == 1

    def test_filtered_subscription(self, store):
        """测试带过滤条件的订阅只包含匹配记录。"""
        snapshots = []
        store.subscribe("log", snapshots.append, filters=[Filter("room", "==", "a")])

        store.append("log", {"room": "a"})
        store.append("log", {"room": "b"})

        assert [len(s) for s in snapshots] == [0, 1, 1]

    def test_cancel_stops_delivery_and_is_idempotent(self, store):
        """测试取消后不再推送，重复取消无副作用。"""
        snapshots = []
        subscription = store.subscribe("log", snapshots.append)

        subscription.cancel()
        subscription.cancel()
        store.append("log", {"n": 1})

        assert subscription.cancelled
        assert len(snapshots) == 1
        assert store._listeners == []

    def test_close_reports_error_to_subscribers(self, store):
        """测试断开连接时订阅者收到 StoreError。"""
        errors = []
        subscription = store.subscribe("log", lambda s: None, errors.append)

        store.close()

        assert len(errors) == 1
        assert isinstance(errors[0], StoreError)
        assert subscription.cancelled
        with pytest.raises(StoreError):
            store.get_all("log")

    def test_concurrent_writes_are_delivered_in_write_order(self, store):
        """测试两个线程同时写入时，订阅者按写入顺序收到快照。"""
        entered = threading.Event()
        release = threading.Event()
        received = []

        def slow(snapshot):
            if len(snapshot) == 1:
                entered.set()
                release.wait(timeout=5)

        store.subscribe("log", slow, order_by="timestamp")
        store.subscribe("log", lambda s: received.append([r["text"] for r in s]), order_by="timestamp")

        first = threading.Thread(target=store.append, args=("log", {"text": "first"}))
        second = threading.Thread(target=store.append, args=("log", {"text": "second"}))
        first.start()
        assert entered.wait(timeout=5)
        second.start()
        second.join(timeout=0.1)
        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert received == [[], ["first"], ["first", "second"]]

    def test_failing_listener_does_not_break_writes(self, store):
        """测试监听器异常不会影响写入。"""
        def broken(snapshot):
            if snapshot:
                raise RuntimeError("boom")

        store.subscribe("log", broken)
        doc_id, _ = store.append("log", {"n": 1})

        assert store.get("log", doc_id) is not None


class TestJsonFileDocumentStore:
    """测试 JSON 文件存储。"""

    def test_records_survive_reload(self, tmp_path):
        """测试重新加载后数据仍然存在，datetime 类型保持不变。"""
        first = JsonFileDocumentStore(tmp_path)
        first.put("users", "u1", {"displayName": "Ann", "skillsToTeach": ["Cooking"]})
        doc_id, timestamp = first.append("conversations/c1/messages", {"text": "hi"})

        second = JsonFileDocumentStore(tmp_path)

        assert second.get("users", "u1")["skillsToTeach"] == ["Cooking"]
        message = second.get("conversations/c1/messages", doc_id)
        assert isinstance(message["timestamp"], datetime)
        assert message["timestamp"] == timestamp

    def test_subcollection_file_name(self, tmp_path):
        """测试子集合路径中的 / 被替换。"""
        store = JsonFileDocumentStore(tmp_path)
        store.append("conversations/c1/messages", {"text": "hi"})

        assert (tmp_path / "conversations__c1__messages.json").exists()

    def test_missing_directory_is_empty_store(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path / "not-created")

        assert store.get_all("users") == []
        assert not (tmp_path / "not-created").exists()

    def test_corrupt_file_raises_store_error(self, tmp_path):
        (tmp_path / "users.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreError):
            JsonFileDocumentStore(tmp_path)

    def test_failed_write_leaves_store_unchanged(self, tmp_path):
        """测试写盘失败时内存数据、时间戳和订阅者都不受影响。"""
        store = JsonFileDocumentStore(tmp_path)
        store.put("users", "u1", {"displayName": "Ann"})
        snapshots = []
        store.subscribe("log", snapshots.append)
        (tmp_path / "log.json").mkdir()
        (tmp_path / "users.json").unlink()
        (tmp_path / "users.json").mkdir()

        with pytest.raises(StoreError):
            store.append("log", {"text": "lost"})
        with pytest.raises(StoreError):
            store.put("users", "u1", {"displayName": "Changed"})

        assert store.get_all("log") == []
        assert store.get("users", "u1")["displayName"] == "Ann"
        assert len(snapshots) == 1
        assert not list(tmp_path.glob("*.tmp"))

        (tmp_path / "log.json").rmdir()
        (tmp_path / "users.json").rmdir()
        store.append("log", {"text": "kept"})
        assert [r["text"] for r in JsonFileDocumentStore(tmp_path).get_all("log")] == ["kept"]

    def test_reload_keeps_timestamps_monotonic(self, tmp_path, clock):
        """测试重启后时钟回拨，新消息仍排在旧消息之后。"""
        first = JsonFileDocumentStore(tmp_path, clock=clock)
        _, before = first.append("conversations/c1/messages", {"text": "before restart"})

        clock.advance(-5)
        second = JsonFileDocumentStore(tmp_path, clock=clock)
        _, after = second.append("conversations/c1/messages", {"text": "after restart"})
        snapshots = []
        second.subscribe("conversations/c1/messages", snapshots.append, order_by="timestamp")

        assert after >= before
        assert [r["text"] for r in snapshots[-1]] == ["before restart", "after restart"]

    def test_in_memory_store_is_default_for_tests(self):
        store = InMemoryDocumentStore()

        store.put("users", "u1", {"displayName": "Ann"})

        assert store.get_all("users")[0]["id"] == "u1"
