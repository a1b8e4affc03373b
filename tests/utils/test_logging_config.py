import logging

from ekatalog.logging_config import SafeFormatter, TraceIdFilter


def _record():
    return logging.LogRecord("ekatalog.test", logging.INFO, __file__, 1, "hello", None, None)


def test_trace_filter_without_active_span_uses_dash():
    record = _record()

    assert TraceIdFilter().filter(record) is True
    assert record.trace_id == "-"
    assert record.span_id == "-"


def test_safe_formatter_tolerates_unfiltered_records():
    formatter = SafeFormatter("[trace=%(trace_id)s span=%(span_id)s] %(message)s")

    assert formatter.format(_record()) == "[trace=- span=-] hello"
