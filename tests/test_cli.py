from pathlib import Path

import pytest

from pacctl.cli import main


def test_render_prints_pac_for_domain_file(tmp_path: Path, capsys) -> None:
    domains = tmp_path / "domains.txt"
    domains.write_text("b.com\na.com\n\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main(["render", "--domains", str(domains), "--endpoint", "proxy.example:443"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert out.startswith("function FindProxyForURL(url, host)")
    assert '["a.com", "b.com"]' in out


def test_render_reports_empty_list(tmp_path: Path, capsys) -> None:
    domains = tmp_path / "domains.json"
    domains.write_text("[]", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main(["render", "--domains", str(domains), "--endpoint", "proxy.example:443"])
    assert exc.value.code == 1
    assert '"status": "error"' in capsys.readouterr().out
