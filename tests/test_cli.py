from __future__ import annotations

import socket
import threading
import urllib.request

import pytest

from postpress.cli import build_parser, main
from postpress.server import make_server


def build_args(site, *extra: str) -> list[str]:
    return ["build", "-s", str(site), "--workers", "1", "--no-cache", *extra]


class TestParser:
    def test_defaults(self) -> None:
        args = build_parser().parse_args(["build"])
        assert args.source == "."
        assert args.config == "_config.yml"
        assert args.cache is True
        assert args.strict_assets is None
        assert args.drafts is False

    def test_serve_options(self) -> None:
        args = build_parser().parse_args(["serve", "-P", "4001", "--strict-assets"])
        assert args.port == 4001
        assert args.host == "127.0.0.1"
        assert args.strict_assets is True

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestBuildCommand:
    def test_success(self, site, write_post, capsys) -> None:
        write_post("2024-03-05-hello.md", title="Hello World")
        assert main(build_args(site)) == 0
        out = capsys.readouterr().out
        assert "Built 1 posts" in out
        assert "Site generated in:" in out
        assert (site / "_site" / "hello-world.html").is_file()

    def test_failure_lists_every_error(self, site, write_post, capsys) -> None:
        write_post("2024-01-01-a.md", title="Hello World")
        write_post("2024-02-01-b.md", title="Hello World")
        write_post("2024-03-01-c.md", body="no title\n")
        assert main(build_args(site)) == 1
        err = capsys.readouterr().err
        assert (
            "error: _posts/2024-02-01-b.md: permalink /hello-world is already used by _posts/2024-01-01-a.md"
            in err
        )
        assert "error: _posts/2024-03-01-c.md: missing required front matter field 'title'" in err
        assert "Build failed: 2 errors." in err

    def test_missing_config(self, tmp_path, capsys) -> None:
        assert main(build_args(tmp_path)) == 1
        assert "error:" in capsys.readouterr().err

    def test_warnings_are_printed(self, site, write_post, capsys) -> None:
        write_post("2024-01-01-a.md", body="![x](gone.png)\n", title="Pics")
        assert main(build_args(site)) == 0
        assert "warning: _posts/2024-01-01-a.md: referenced asset not found: gone.png" in capsys.readouterr().err

    def test_strict_assets_flag(self, site, write_post) -> None:
        write_post("2024-01-01-a.md", body="![x](gone.png)\n", title="Pics")
        assert main(build_args(site, "--strict-assets")) == 1


class TestServe:
    def test_busy_port(self, site, write_post, capsys) -> None:
        write_post("2024-03-05-hello.md", title="Hello World")
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]
            code = main(["serve", "-s", str(site), "--workers", "1", "--no-cache", "--port", str(port)])
        assert code == 1
        assert f"cannot bind 127.0.0.1:{port}" in capsys.readouterr().err

    def test_pretty_urls(self, site, write_post) -> None:
        write_post("2024-03-05-hello.md", title="Hello World")
        assert main(build_args(site)) == 0
        server = make_server(site / "_site", "127.0.0.1", 0)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            port = server.server_address[1]
            with urllib.request.urlopen(f"http://127.0.0.1:{port}/hello-world", timeout=5) as response:
                body = response.read().decode("utf-8")
            assert "Hello World" in body
        finally:
            server.shutdown()
            server.server_close()
