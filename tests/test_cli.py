import pytest

from proxysync.cli import EXIT_CONFIG, EXIT_FAILED, EXIT_OK, main


@pytest.fixture()
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PSYNC_OPERATIONS__INTERVAL_SEC", "0.01")
    return tmp_path


def _intent(workdir, certs=("global/sslCertificates/c1",)):
    lines = ["name: web", "url_map: global/urlMaps/web-um"]
    if certs:
        lines.append("certificates:")
        lines.extend(f"  - {c}" for c in certs)
    path = workdir / "web.yml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


def _common(api, workdir):
    return [
        "--base-url", api.base_url,
        "--project", "p1",
        "--token", "T",
        "--retries", "0",
        "--logs-dir", str(workdir / "logs"),
    ]


def test_converge_creates_both_proxies(compute_api, workdir, capsys):
    rc = main(["converge", "--intent", _intent(workdir)] + _common(compute_api, workdir))

    assert rc == EXIT_OK
    assert "http=CREATED https=CREATED" in capsys.readouterr().out
    assert "k8s-tp-web" in compute_api.proxies["targetHttpProxies"]
    assert compute_api.proxies["targetHttpsProxies"]["k8s-tps-web"]["sslCertificates"] == [
        "https://www.googleapis.com/compute/v1/projects/p1/global/sslCertificates/c1"
    ]
    assert list((workdir / "logs").glob("20*/converge_*.log"))


def test_converge_twice_is_unchanged(compute_api, workdir, capsys):
    args = ["converge", "--intent", _intent(workdir)] + _common(compute_api, workdir)
    assert main(args) == EXIT_OK
    writes = len(compute_api.writes)
    capsys.readouterr()

    assert main(args) == EXIT_OK
    assert "http=UNCHANGED https=UNCHANGED" in capsys.readouterr().out
    assert len(compute_api.writes) == writes


def test_converge_custom_prefix(compute_api, workdir, capsys):
    rc = main(["converge", "--intent", _intent(workdir, certs=()), "--prefix", "edge"] + _common(compute_api, workdir))
    assert rc == EXIT_OK
    assert "http=CREATED https=SKIPPED" in capsys.readouterr().out
    assert list(compute_api.proxies["targetHttpProxies"]) == ["edge-tp-web"]


def test_dry_run_prints_plan_and_writes_nothing(compute_api, workdir, capsys):
    compute_api.seed("targetHttpProxies", "k8s-tp-web", "global/urlMaps/old-um")
    rc = main(["converge", "--intent", _intent(workdir), "--dry-run"] + _common(compute_api, workdir))

    assert rc == EXIT_OK
    out = capsys.readouterr().out
    assert "plan: setUrlMap targetHttpProxies/k8s-tp-web -> global/urlMaps/web-um" in out
    assert "plan: create targetHttpsProxies/k8s-tps-web" in out
    assert "http=UPDATED https=CREATED" in out
    assert compute_api.writes == []


def test_certificate_limit_fails_without_writes(compute_api, workdir, capsys):
    certs = [f"global/sslCertificates/c{i}" for i in range(11)]
    rc = main(["converge", "--intent", _intent(workdir, certs=certs)] + _common(compute_api, workdir))

    assert rc == EXIT_FAILED
    assert "k8s-tps-web" in capsys.readouterr().err
    # the plain proxy converges first; the TLS proxy is never written
    assert [c[1] for c in compute_api.writes] == ["projects/p1/global/targetHttpProxies"]


def test_api_failure_is_reported(compute_api, workdir, capsys):
    compute_api.fail_writes_with = 403
    rc = main(["converge", "--intent", _intent(workdir)] + _common(compute_api, workdir))
    assert rc == EXIT_FAILED
    assert "403" in capsys.readouterr().err


def test_missing_intent_file(compute_api, workdir, capsys):
    rc = main(["converge", "--intent", str(workdir / "missing.yml")] + _common(compute_api, workdir))
    assert rc == EXIT_CONFIG
    assert "not found" in capsys.readouterr().err


def test_missing_project_is_a_config_error(workdir, capsys):
    rc = main(["converge", "--intent", _intent(workdir), "--logs-dir", str(workdir / "logs")])
    assert rc == EXIT_CONFIG
    assert "api.project" in capsys.readouterr().err


def test_certs_in_use_lists_attached_certificates(compute_api, workdir, capsys):
    compute_api.seed("targetHttpsProxies", "k8s-tps-web", "global/urlMaps/web-um", ["c2", "c1"])
    rc = main(["certs-in-use", "--name", "web"] + _common(compute_api, workdir))
    assert rc == EXIT_OK
    assert capsys.readouterr().out.splitlines() == ["c2", "c1"]


def test_certs_in_use_missing_proxy(compute_api, workdir, capsys):
    rc = main(["certs-in-use", "--name", "web"] + _common(compute_api, workdir))
    assert rc == EXIT_FAILED
    assert "k8s-tps-web" in capsys.readouterr().err


def test_dry_run_without_project_is_a_config_error(workdir, capsys):
    rc = main(["converge", "--intent", _intent(workdir), "--dry-run", "--logs-dir", str(workdir / "logs")])
    assert rc == EXIT_CONFIG
    assert "project is required" in capsys.readouterr().err


def test_certs_in_use_without_project_is_a_config_error(workdir, monkeypatch, capsys):
    monkeypatch.setenv("PSYNC_APP__DRY_RUN", "true")
    rc = main(["certs-in-use", "--name", "web", "--logs-dir", str(workdir / "logs")])
    assert rc == EXIT_CONFIG
    assert "project is required" in capsys.readouterr().err
