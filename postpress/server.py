from __future__ import annotations

import functools
import logging
import os
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

logger = logging.getLogger(__name__)


class PreviewHandler(SimpleHTTPRequestHandler):
    """Serve ``/post-title`` from ``post-title.html`` like a static host does."""

    def translate_path(self, path: str) -> str:
        translated = super().translate_path(path)
        if os.path.exists(translated):
            return translated
        candidate = translated.rstrip("/\\") + ".html"
        if os.path.isfile(candidate):
            return candidate
        return translated

    def log_message(self, format: str, *args) -> None:
        logger.info("%s - %s", self.address_string(), format % args)


def make_server(output_dir: Path, host: str = "127.0.0.1", port: int = 4000) -> ThreadingHTTPServer:
    """Bind the preview server; raises ``OSError`` when the port is unavailable."""
    handler = functools.partial(PreviewHandler, directory=str(output_dir))
    return ThreadingHTTPServer((host, port), handler)


def serve(server: ThreadingHTTPServer, output_dir: Path) -> None:
    bound_host, bound_port = server.server_address[:2]
    print(f"Serving {output_dir} at http://{bound_host}:{bound_port}/ (Ctrl+C to stop)")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("Stopping server.")
    finally:
        server.server_close()
