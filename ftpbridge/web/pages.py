"""
HTML pages for the file browser and the watch-together viewer.

Pure functions of their input. Every value that ends up in markup is
escaped; every value that ends up in a URL is percent-encoded.
"""

from __future__ import annotations

import json
import posixpath
from datetime import datetime
from html import escape
from urllib.parse import quote

from ftpbridge.remote.listing import RemoteEntry
from ftpbridge.streaming.content_types import is_playable

SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")

_STYLE = """
@import url("https://fonts.googleapis.com/css2?family=Fira+Sans+Extra+Condensed:wght@400;700&display=swap");
body {
  font-family: "Fira Sans Extra Condensed", Arial, Helvetica, sans-serif;
  margin: 0;
  padding: 10px;
  background-color: #112233;
  color: #e0e0e0;
}
.container {
  max-width: 1000px;
  margin: 0 auto;
  background: #1a2b3c;
  padding: 15px;
  border-radius: 5px;
  box-shadow: 0 2px 5px rgba(0,0,0,0.3);
}
h1 { color: #ffffff; margin-top: 0; font-size: 1.5rem; }
.path-info { margin-bottom: 15px; padding: 8px; background-color: #1e3246; border-radius: 4px; word-break: break-all; }
.server-info { margin-bottom: 10px; font-size: 0.85rem; color: #b0b0b0; }
table { width: 100%; border-collapse: collapse; table-layout: fixed; }
th, td { padding: 8px; text-align: left; border-bottom: 1px solid #2a3a4a; }
th { background-color: #1e3246; color: #ffffff; }
tr:hover { background-color: #233548; }
a { color: #77aaff; text-decoration: none; }
a:hover { text-decoration: underline; color: #99ccff; }
.name { display: flex; align-items: center; gap: 0.5rem; overflow: hidden; }
.name a { white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
.folder-icon::before { content: "\\1F4C1  "; }
.file-icon::before { content: "\\1F4C4  "; }
.back-link { margin-bottom: 15px; display: inline-block; }
table th:nth-child(1), table td:nth-child(1) { width: 50%; }
table th:nth-child(2), table td:nth-child(2) { width: 20%; text-align: center; }
table th:nth-child(3), table td:nth-child(3) { width: 30%; text-align: right; }
.controls { margin: 0.5rem 0; display: flex; align-items: center; gap: 0.5rem; }
"""


def format_file_size(size: int) -> str:
    """
    Human-readable size with up to two decimals.

    >>> format_file_size(0)
    '0 Bytes'
    >>> format_file_size(1536)
    '1.5 KB'
    """
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[index]}"


def format_date(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '<meta charset="UTF-8">\n'
        f"<title>{escape(title)}</title>\n"
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<style>{_STYLE}</style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


def _entry_row(entry: RemoteEntry) -> str:
    name = escape(entry.name)
    target = quote(entry.path, safe="")

    if entry.is_directory:
        link = f'<a class="folder-icon" href="/?path={target}">{name}</a>'
        size = "-"
    else:
        link = f'<a class="file-icon" href="/file?path={target}">{name}</a>'
        if is_playable(entry.name):
            link += f' <a href="/videosync?url={target}">Play</a>'
        size = format_file_size(entry.size)

    return (
        "<tr>"
        f'<td><div class="name">{link}</div></td>'
        f"<td>{size}</td>"
        f"<td>{format_date(entry.modified)}</td>"
        "</tr>"
    )


def render_index(path: str, entries: list[RemoteEntry], server_label: str) -> str:
    """Render the directory listing page."""
    parts = [
        '<div class="container">',
        "<h1>FTP File Explorer</h1>",
        f'<div class="server-info">Host: {escape(server_label)}</div>',
        f'<div class="path-info">Current location: {escape(path)}</div>',
    ]

    if path != "/":
        parent = posixpath.dirname(path.rstrip("/")) or "/"
        parts.append(f'<a class="back-link" href="/?path={quote(parent, safe="")}">&#x2B06; Up one level</a>')

    parts.append("<table><thead><tr><th>Name</th><th>Size</th><th>Modified</th></tr></thead><tbody>")
    parts.extend(_entry_row(entry) for entry in entries)
    parts.append("</tbody></table></div>")

    return _page("FTP File Explorer", "\n".join(parts))


def render_error(title: str, message: str) -> str:
    """Render an error page with a link back to the root listing."""
    body = (
        f"<h1>{escape(title)}</h1>"
        f"<p>{escape(message)}</p>"
        '<p><a href="/">Back to Home Page</a></p>'
    )
    return _page(title, body)


_VIEWER_SCRIPT = """
const initialUrl = %(initial_url)s;
const video = document.getElementById("video");
const videoUrl = document.getElementById("videoUrl");
const speedInput = document.getElementById("speedInput");
const wsScheme = window.location.protocol === "https:" ? "wss://" : "ws://";
const socket = new WebSocket(wsScheme + window.location.host + "/ws/videosync");

function resolveUrl(url) {
  if (!url || url.indexOf("http") === 0) return url;
  return window.location.origin + "/file?path=" + encodeURIComponent(url);
}

function applyState(data) {
  if (data.url !== undefined) {
    const src = resolveUrl(data.url);
    if (src && video.src !== src) video.src = src;
    videoUrl.value = data.url;
  }
  if (data.position !== undefined) video.currentTime = data.position;
  if (data.speed !== undefined) {
    video.playbackRate = data.speed;
    speedInput.value = data.speed;
  }
  if (data.paused !== undefined) {
    if (data.paused) video.pause(); else video.play();
  }
}

function sendData() {
  const data = {
    url: videoUrl.value,
    position: video.currentTime,
    speed: parseFloat(speedInput.value),
    paused: video.paused,
  };
  video.playbackRate = data.speed;
  socket.send(JSON.stringify({event: "update", data: data}));
}

let joined = false;

socket.addEventListener("message", (event) => {
  const message = JSON.parse(event.data);
  if (message.event === "update") {
    applyState(message.data);
  } else if (message.event === "sync") {
    applyState(message.data);
    // The snapshot predates this page; announce our URL only after it
    if (!joined && initialUrl) {
      videoUrl.value = initialUrl;
      video.src = resolveUrl(initialUrl);
      sendData();
    }
    joined = true;
  }
});
"""


def render_viewer(url: str) -> str:
    """Render the watch-together page for a media URL or remote path."""
    # json.dumps output is safe inside <script> once "</" is broken up
    initial_url = json.dumps(url).replace("</", "<\\/")
    body = (
        '<form action="/videosync" class="controls">'
        '<label for="videoUrl">Video URL</label>'
        f'<input name="url" type="text" id="videoUrl" value="{escape(url)}" style="width: 75%">'
        '<button type="submit">Play</button>'
        "</form>"
        '<video id="video" style="width: 100%; max-height: 80vh" controls></video>'
        '<div class="controls">'
        '<label for="speedInput">Playback Speed</label>'
        '<input type="number" id="speedInput" value="1" step="0.05" min="0.05">'
        '<button onclick="sendData()">Sync</button>'
        "</div>"
        f"<script>{_VIEWER_SCRIPT % {'initial_url': initial_url}}</script>"
    )
    return _page("VideoSync", body)
