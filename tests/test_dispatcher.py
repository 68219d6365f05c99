from vuln_watch.collector import collect_update
from vuln_watch.dispatcher import Dispatcher
from vuln_watch.references import ReferenceCache


def detect(storage, source):
    """Run the collector and return its notify-worthy records."""
    return collect_update(storage, [source])


def test_new_record_is_pushed_to_both_sinks(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    source = fake_source("a", pages=[[vuln("a:1", title="Exchange RCE")]])
    dispatcher = Dispatcher(config(), storage, text, raw)

    assert dispatcher.dispatch(detect(storage, source)) == 1

    assert [title for title, _ in text.markdown] == ["Exchange RCE"]
    assert raw.raw[0]["type"] == "vuln-watch-vulninfo"
    assert raw.raw[0]["content"]["unique_key"] == "a:1"
    assert raw.raw[0]["content"]["reason"] == ["newly created"]
    assert storage.find_by_key("a:1").pushed is True


def test_not_valuable_is_skipped(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    source = fake_source("a", pages=[[vuln("a:1")]], valuable=False)
    dispatcher = Dispatcher(config(), storage, text, raw)

    assert dispatcher.dispatch(detect(storage, source)) == 0
    assert text.calls == 0 and raw.calls == 0
    assert storage.find_by_key("a:1").pushed is False


def test_no_filter_pushes_everything(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    source = fake_source("a", pages=[[vuln("a:1")]], valuable=False)
    dispatcher = Dispatcher(config(no_filter=True), storage, text, raw)

    assert dispatcher.dispatch(detect(storage, source)) == 1
    assert len(text.markdown) == 1


def test_pushed_record_is_never_pushed_again(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    dispatcher = Dispatcher(config(), storage, text, raw)

    first = fake_source("a", pages=[[vuln("a:1", tags=["rce"])]])
    assert dispatcher.dispatch(detect(storage, first)) == 1

    # a new tag makes the record notify-worthy again
    second = fake_source("a", pages=[[vuln("a:1", tags=["rce", "poc"])]])
    vulns = detect(storage, second)
    assert [v.unique_key for v in vulns] == ["a:1"]

    assert dispatcher.dispatch(vulns) == 0
    assert len(text.markdown) == 1
    assert len(raw.raw) == 1
    assert storage.find_by_key("a:1").pushed is True


def test_cve_pushed_by_other_source_is_suppressed(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    dispatcher = Dispatcher(config(enable_cve_filter=True), storage, text, raw)

    a = fake_source("a", pages=[[vuln("a:1", cve="CVE-2024-1111")]])
    assert dispatcher.dispatch(detect(storage, a)) == 1

    b = fake_source("b", pages=[[vuln("b:1", cve="CVE-2024-1111")]])
    assert dispatcher.dispatch(detect(storage, b)) == 0

    assert len(text.markdown) == 1
    # suppression does not mark the record as pushed
    assert storage.find_by_key("b:1").pushed is False


def test_cve_filter_disabled_pushes_both(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    dispatcher = Dispatcher(config(enable_cve_filter=False), storage, text, raw)

    a = fake_source("a", pages=[[vuln("a:1", cve="CVE-2024-1111")]])
    b = fake_source("b", pages=[[vuln("b:1", cve="CVE-2024-1111")]])
    assert dispatcher.dispatch(detect(storage, a)) == 1
    assert dispatcher.dispatch(detect(storage, b)) == 1


def test_missing_catalog_row_is_skipped(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(), pusher()
    source = fake_source("a")
    item = vuln("a:404")
    item.creator = source
    dispatcher = Dispatcher(config(), storage, text, raw)

    assert dispatcher.dispatch([item]) == 0
    assert text.calls == 0


def test_sink_failure_does_not_block_other_sink(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(fail=True), pusher()
    source = fake_source("a", pages=[[vuln("a:1")], ])
    dispatcher = Dispatcher(config(), storage, text, raw)

    assert dispatcher.dispatch(detect(storage, source)) == 1
    assert len(raw.raw) == 1
    assert storage.find_by_key("a:1").pushed is True


def test_failing_sinks_do_not_stop_later_records(storage, vuln, fake_source, pusher, config):
    text, raw = pusher(fail=True), pusher(fail=True)
    source = fake_source("a", pages=[[vuln("a:1"), vuln("a:2")]])
    dispatcher = Dispatcher(config(), storage, text, raw)

    assert dispatcher.dispatch(detect(storage, source)) == 2
    assert all(v.pushed for v in storage.query())


def test_references_merged_from_pull_requests(storage, vuln, fake_source, pusher, config, github, pull_request):
    client = github(prs=[
        pull_request(title="Add CVE-2099-0001 template", body="", url="https://github.com/pr/1"),
        pull_request(title="Add CVE-2099-00011 template", body="", url="https://github.com/pr/2"),
    ])
    text, raw = pusher(), pusher()
    dispatcher = Dispatcher(config(), storage, text, raw)

    source = fake_source("a", pages=[[vuln("a:1", cve="CVE-2099-0001")]])
    cache = ReferenceCache(client)
    assert dispatcher.dispatch(detect(storage, source), cache) == 1

    assert storage.find_by_key("a:1").references == ["https://github.com/pr/1"]
    assert raw.raw[0]["content"]["references"] == ["https://github.com/pr/1"]
    assert "https://github.com/pr/1" in text.markdown[0][1]


def test_reference_merge_does_not_duplicate(storage, vuln, fake_source, pusher, config, github, pull_request):
    client = github(prs=[pull_request(title="CVE-2099-0001", body="", url="https://github.com/pr/1")])
    dispatcher = Dispatcher(config(), storage, pusher(), pusher())

    source = fake_source("a", pages=[[vuln("a:1", cve="CVE-2099-0001", references=["https://github.com/pr/1"])]])
    dispatcher.dispatch(detect(storage, source), ReferenceCache(client))

    assert storage.find_by_key("a:1").references == ["https://github.com/pr/1"]


def test_reference_search_disabled(storage, vuln, fake_source, pusher, config, github):
    client = github()
    dispatcher = Dispatcher(config(no_reference_search=True), storage, pusher(), pusher())

    source = fake_source("a", pages=[[vuln("a:1", cve="CVE-2099-0001")]])
    assert dispatcher.dispatch(detect(storage, source), ReferenceCache(client)) == 1
    assert client.calls == []


def test_reference_fetch_failure_still_pushes(storage, vuln, fake_source, pusher, config, github):
    client = github(fail=True)
    text, raw = pusher(), pusher()
    dispatcher = Dispatcher(config(), storage, text, raw)

    source = fake_source("a", pages=[[vuln("a:1", cve="CVE-2099-0001"), vuln("a:2", cve="CVE-2099-0002")]])
    assert dispatcher.dispatch(detect(storage, source), ReferenceCache(client)) == 2

    assert len(text.markdown) == 2
    # failures are not cached, every CVE record retries
    assert len(client.calls) == 2
    assert storage.find_by_key("a:1").references == []


def test_records_without_cve_skip_reference_search(storage, vuln, fake_source, pusher, config, github):
    client = github()
    dispatcher = Dispatcher(config(), storage, pusher(), pusher())

    source = fake_source("a", pages=[[vuln("a:1")]])
    assert dispatcher.dispatch(detect(storage, source), ReferenceCache(client)) == 1
    assert client.calls == []
