from __future__ import annotations

import json


class FakeStreamResponse:
    def __init__(self, status_code: int = 200, pieces=None, text: str = ""):
        self.status_code = status_code
        self.pieces = list(pieces or [])
        self.text = text
        self.closed = False

    def iter_content(self, chunk_size=None):
        for piece in self.pieces:
            yield piece.encode("utf-8") if isinstance(piece, str) else piece

    def close(self):
        self.closed = True


class FakeExportSession:
    """Serves one queued response per GET, recording the request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "params": params, "headers": headers, "stream": stream})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        pass


def export_body(*events) -> str:
    return "\n".join(json.dumps(e) for e in events) + "\n"


