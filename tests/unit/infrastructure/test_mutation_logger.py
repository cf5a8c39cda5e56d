"""
Unit tests for infrastructure/logger.py - MutationLogger
"""
from datetime import datetime, timezone

from infrastructure.logger import EventBuffer, LoggerConfig, MutationLogger
from viz.core import MutationEvent, MutationType


class TestEventBuffer:

    def test_ring_buffer_drops_oldest(self):
        buffer = EventBuffer(max_size=2)
        for i in range(3):
            buffer.append(MutationEvent(timestamp=str(i), sequence=i, mutation_type="NODE_CREATED", node_id=str(i)))
        assert len(buffer) == 2
        assert [e.node_id for e in buffer.get_last(5)] == ["1", "2"]


class TestMutationLogger:

    def test_sequence_and_queries(self):
        logger = MutationLogger()
        logger.log_node_created("orders", "table")
        logger.log_expanded("orders", "upstream", ["raw_orders", "customers"])
        logger.log_node_deleted("customers", "table")

        events = logger.get_recent_events()
        assert [e.sequence for e in events] == [1, 2, 3]
        assert len(logger.get_events_for_node("customers")) == 2
        assert len(logger.get_events_by_type(MutationType.EXPANDED)) == 1
        timeline = logger.get_node_timeline("orders")
        assert [t["type"] for t in timeline] == ["NODE_CREATED", "EXPANDED"]

    def test_subscribers_receive_events(self):
        logger = MutationLogger()
        seen = []
        logger.subscribe(seen.append)
        logger.log_focus_changed("orders")
        logger.unsubscribe(seen.append)
        logger.log_focus_changed(None)
        assert [e.node_id for e in seen] == ["orders"]

    def test_failing_subscriber_does_not_block_others(self, caplog):
        logger = MutationLogger()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        logger.subscribe(broken)
        logger.subscribe(seen.append)
        logger.log_filters_changed("{}")
        assert len(seen) == 1
        assert "Mutation subscriber" in caplog.text

    def test_file_log_round_trip(self, tmp_path):
        with MutationLogger(LoggerConfig(enable_file_log=True, log_path=tmp_path)) as logger:
            logger.log_edge_created("a-b", "a", "b", "depends_on")
            logger.log_state_saved("state_1_abc")

        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = tmp_path / f"mutations_{today}.jsonl"
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("not json\n")

        events = MutationLogger(LoggerConfig(enable_file_log=True, log_path=tmp_path)).read_log(today)
        assert [e.mutation_type for e in events] == ["EDGE_CREATED", "STATE_SAVED"]
        assert events[0].edge_id == "a-b"

    def test_read_log_without_file_logging(self):
        assert MutationLogger().read_log("2026-01-01") == []
