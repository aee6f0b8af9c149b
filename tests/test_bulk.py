import pytest
from elasticsearch import ConnectionTimeout

from connection_management import ConnectionTimeoutError
from data_management_operations import (
    BatchPartialFailureError,
    BulkBufferConsumedError,
    BulkOperationType,
    DataOperationConfig,
    OperationStatus,
)
from index_dao import IndexDAO
from fakes import Thing


def bump(thing: Thing) -> Thing:
    return thing.model_copy(update={"amount": thing.amount + 1})


def test_outcomes_match_items_by_position(dao):
    dao.index("taken", Thing(name="taken"))

    def build(buffer):
        buffer.index("a", Thing(name="a"))
        buffer.create("taken", Thing(name="duplicate"))
        buffer.index("c", Thing(name="c"))

    result = dao.bulk(build)

    assert [o.position for o in result.outcomes] == [0, 1, 2]
    assert [o.doc_id for o in result.outcomes] == ["a", "taken", "c"]
    assert [o.succeeded for o in result.outcomes] == [True, False, True]
    assert result.status == OperationStatus.PARTIAL
    assert result.successful_count == 2
    assert result.failed_count == 1

    failure = result.outcomes[1]
    assert failure.op_type == BulkOperationType.CREATE
    assert failure.error.status == 409
    assert failure.error.type == "version_conflict_engine_exception"
    assert failure.version is None

    assert dao.get("taken").value.name == "taken"
    assert dao.get("c").version == result.outcomes[2].version


def test_raise_for_failures_reports_failed_items(dao):
    dao.index("taken", Thing(name="taken"))

    def build(buffer):
        buffer.index("a", Thing(name="a"))
        buffer.index("taken", Thing(name="duplicate"))

    result = dao.bulk(build)

    with pytest.raises(BatchPartialFailureError) as exc_info:
        result.raise_for_failures()
    assert exc_info.value.failed_ids == ["taken"]
    assert list(exc_info.value.error_details) == [1]
    assert exc_info.value.successful_count == 1
    assert exc_info.value.success_rate == 50.0


def test_fully_successful_batch(dao):
    result = dao.bulk(lambda buffer: buffer.index("a", Thing(name="a")).index("b", Thing(name="b")))

    assert result.status == OperationStatus.SUCCESS
    assert result.raise_for_failures() is result
    assert result.success_rate == 100.0
    assert result.timing is not None


def test_update_with_version_value_and_transform(dao, fake_es):
    dao.index("a", Thing(name="a"))
    record = dao.get("a")

    def build(buffer):
        buffer.update(
            "a",
            record.version.seq_no,
            record.version.primary_term,
            record.value,
            lambda thing: thing.model_copy(update={"name": thing.name + " updated"})
        )

    result = dao.bulk(build)

    assert result.outcomes[0].succeeded
    assert result.outcomes[0].op_type == BulkOperationType.UPDATE
    assert dao.get("a").value.name == "a updated"
    action = fake_es.bulk_requests[-1][0]
    assert action == {"index": {
        "_index": "things",
        "_id": "a",
        "if_seq_no": record.version.seq_no,
        "if_primary_term": record.version.primary_term,
    }}

    stale = dao.bulk(lambda buffer: buffer.update("a", record.version.seq_no, record.version.primary_term,
                                                  Thing(name="stale")))
    assert stale.outcomes[0].failed
    assert stale.outcomes[0].error.status == 409
    assert dao.get("a").value.name == "a updated"


def test_transform_only_update_reads_at_submission(dao, fake_es):
    dao.index("a", Thing(name="a", amount=1))

    def build(buffer):
        buffer.update("a", transform=bump)
        buffer.update("ghost", transform=bump)
        buffer.index("b", Thing(name="b"))

    result = dao.bulk(build)

    assert [o.succeeded for o in result.outcomes] == [True, False, True]
    missing = result.outcomes[1]
    assert missing.doc_id == "ghost"
    assert missing.status == 404
    assert missing.error.type == "document_missing_exception"
    assert dao.get("a").value.amount == 2
    # only the two resolvable items were sent
    assert len(fake_es.bulk_requests[-1]) == 4


def test_deletes_in_a_batch(dao):
    dao.index("a", Thing(name="a"))

    result = dao.bulk(lambda buffer: buffer.delete("a").delete("ghost"))

    assert result.outcomes[0].succeeded
    assert result.outcomes[0].result == "deleted"
    assert result.outcomes[1].failed
    assert result.outcomes[1].status == 404
    assert dao.get("a") is None


def test_empty_batch_sends_no_request(dao, fake_es):
    result = dao.bulk(lambda buffer: None)

    assert result.total_count == 0
    assert result.status == OperationStatus.SUCCESS
    assert fake_es.bulk_requests == []


def test_buffer_is_consumed_by_submission(dao):
    buffer = dao.bulk_buffer()
    buffer.index("a", Thing(name="a"))
    buffer.submit()

    assert buffer.consumed
    with pytest.raises(BulkBufferConsumedError):
        buffer.submit()
    with pytest.raises(BulkBufferConsumedError):
        buffer.index("b", Thing(name="b"))


def test_oversized_batch_is_rejected_before_sending(connection_manager, codec, fake_es):
    dao = IndexDAO("things", codec, connection_manager, config=DataOperationConfig(max_bulk_items=2))

    def build(buffer):
        for i in range(3):
            buffer.index(f"doc-{i}", Thing(name=str(i)))

    with pytest.raises(ValueError):
        dao.bulk(build)
    assert fake_es.bulk_requests == []


def test_buffer_as_context_manager_submits_on_exit(dao):
    with dao.bulk_buffer() as buffer:
        buffer.index("a", Thing(name="a"))
        buffer.index(None, Thing(name="generated"))

    assert buffer.result.successful_count == 2
    assert buffer.result.outcomes[1].doc_id
    assert dao.get("a") is not None


def test_buffer_is_not_submitted_when_the_block_raises(dao, fake_es):
    with pytest.raises(RuntimeError):
        with dao.bulk_buffer() as buffer:
            buffer.index("a", Thing(name="a"))
            raise RuntimeError("abort")

    assert not buffer.consumed
    assert fake_es.bulk_requests == []


def test_invalid_items_are_rejected_when_added(dao):
    buffer = dao.bulk_buffer()

    with pytest.raises(ValueError):
        buffer.update("a")
    with pytest.raises(ValueError):
        buffer.delete("a", seq_no=3)
    with pytest.raises(ValueError):
        buffer.index("a", Thing(name="a"), create=True, seq_no=1, primary_term=1)
    assert len(buffer) == 0


def test_failing_transform_fails_only_its_item(dao, fake_es):
    dao.index("good", Thing(name="good", amount=1))
    dao.index("bad", Thing(name="bad"))

    def explode(thing):
        raise ValueError("cannot transform")

    def build(buffer):
        buffer.index("new-1", Thing(name="new"))
        buffer.update("good", transform=bump)
        buffer.update("bad", transform=explode)

    result = dao.bulk(build)

    assert [o.succeeded for o in result.outcomes] == [True, True, False]
    failure = result.outcomes[2]
    assert failure.doc_id == "bad"
    assert failure.status == 422
    assert failure.error.type == "transform_exception"
    assert "cannot transform" in failure.error.reason
    assert dao.get("good").value.amount == 2
    assert dao.get("bad").value == Thing(name="bad")
    assert dao.get("new-1") is not None
    assert len(fake_es.bulk_requests) == 1


def test_undecodable_stored_document_fails_only_its_item(dao, fake_es):
    fake_es.index(index="things", id="corrupt", document={"amount": "lots"})
    dao.index("fine", Thing(name="fine"))

    def build(buffer):
        buffer.update("corrupt", transform=bump)
        buffer.update("fine", transform=bump)

    result = dao.bulk(build)

    assert result.status == OperationStatus.PARTIAL
    assert result.outcomes[0].error.type == "document_serialization_exception"
    assert result.outcomes[1].succeeded
    assert dao.get("fine").value.amount == 1


def test_failed_read_leaves_the_buffer_open_for_resubmission(dao, fake_es, monkeypatch):
    dao.index("a", Thing(name="a"))
    real_get = fake_es.get
    calls = []

    def flaky_get(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise ConnectionTimeout("read timed out")
        return real_get(**kwargs)

    monkeypatch.setattr(fake_es, "get", flaky_get)
    buffer = dao.bulk_buffer()
    buffer.index("b", Thing(name="b"))
    buffer.update("a", transform=bump)

    with pytest.raises(ConnectionTimeoutError):
        buffer.submit()
    assert not buffer.consumed
    assert fake_es.bulk_requests == []

    result = buffer.submit()

    assert result.successful_count == 2
    assert dao.get("a").value.amount == 1
