"""Flask routes: the page, /probe, the two stream routes and the thumbnail proxy."""

import html
import re
from typing import Optional
from urllib.parse import quote, urlsplit

import requests
from flask import Flask, Response, abort, jsonify, request, send_file

from .config import UA, Settings
from .errors import ProbeFailure, SubprocessSpawnFailure
from .formats import default_selection, shortlist
from .probe import ProbeOrchestrator
from .streaming import audio_pipeline, video_pipeline
from .urls import is_http_url, make_query

HEADERS = {"User-Agent": UA, "Accept": "image/*,*/*;q=0.8"}
ILLEGAL = r'[<>:"/\\|?*\x00-\x1f]'
# image CDNs the supported extractors hand out thumbnails from
THUMBNAIL_HOSTS = re.compile(
    r"(^|\.)(ytimg\.com|ggpht\.com|googleusercontent\.com|tiktokcdn\.com|tiktokcdn-us\.com"
    r"|ibyteimg\.com|fbcdn\.net|cdninstagram\.com)$", re.I)


# ---------------- utils ----------------
def sanitize(name: str, ext: str = ""):
    name = (name or "download").strip()
    name = re.sub(ILLEGAL, "_", name).rstrip(".") or "download"
    return f"{name}.{ext.lstrip('.')}" if ext else name


def content_disposition(filename):
    ascii_name = filename.encode("ascii", "ignore").decode() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def thumbnail_allowed(url):
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(THUMBNAIL_HOSTS.search(host))


def probe_payload(result):
    short = shortlist(result.encodings)
    best = default_selection(short)
    meta = result.metadata
    return {
        "url": result.query.url,
        "platform": result.query.platform,
        "title": meta.title,
        "thumbnail": meta.thumbnail,
        "duration": meta.duration,
        "extractor": meta.extractor,
        "formats": [e.to_dict() for e in short],
        "selected": best.format_id if best else None,
    }


def create_app(settings: Optional[Settings] = None, orchestrator: Optional[ProbeOrchestrator] = None) -> Flask:
    settings = settings or Settings.from_env()
    orchestrator = orchestrator or ProbeOrchestrator(settings)

    app = Flask("reelfetch")
    app.url_map.strict_slashes = False
    app.config["SETTINGS"] = settings

    def stream(pipeline, mimetype, ext):
        try:
            pipeline.start()
        except SubprocessSpawnFailure as e:
            app.logger.error("stream: %s", e)
            return str(e), 500
        headers = {"X-Accel-Buffering": "no", "Cache-Control": "no-store"}
        title = (request.args.get("title") or "").strip()
        if title:
            headers["Content-Disposition"] = content_disposition(sanitize(title, ext))
        # the server closes the pipeline when the client disconnects
        return Response(pipeline, mimetype=mimetype, headers=headers, direct_passthrough=True)

    @app.route("/")
    def home():
        return page_shell()

    @app.route("/probe", methods=["POST"])
    def probe():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = request.form
        raw = str(data.get("url") or "").strip()
        if not raw:
            return jsonify({"error": "Missing URL"}), 400
        query = make_query(raw)
        if not is_http_url(query.url):
            return jsonify({"error": "Not an http(s) URL"}), 400
        try:
            result = orchestrator.probe(query)
        except ProbeFailure as e:
            app.logger.warning("probe failed for %s after %d attempt(s): %s", query.url, e.attempts, e)
            status = 500 if isinstance(e.last_error, SubprocessSpawnFailure) else 502
            return jsonify({"error": str(e)}), status
        return jsonify(probe_payload(result))

    @app.route("/download")
    def download():
        raw = request.args.get("url", "").strip()
        if not raw:
            return "Missing URL", 400
        query = make_query(raw)
        if not is_http_url(query.url):
            return "Not an http(s) URL", 400
        fmt = request.args.get("format", "").strip() or None
        return stream(video_pipeline(settings, query, fmt), "video/mp4", "mp4")

    @app.route("/audio")
    def audio():
        raw = request.args.get("url", "").strip()
        if not raw:
            return "Missing URL", 400
        query = make_query(raw)
        if not is_http_url(query.url):
            return "Not an http(s) URL", 400
        return stream(audio_pipeline(settings, query), "audio/mpeg", "mp3")

    @app.route("/thumbnail")
    def thumbnail():
        t = request.args.get("url", "").strip()
        if not thumbnail_allowed(t):
            app.logger.warning("thumbnail: refusing %r", t)
            abort(400)
        try:
            r = requests.get(t, headers=HEADERS, stream=True, timeout=20, allow_redirects=False)
        except requests.RequestException as e:
            app.logger.warning("thumbnail: fetching %r failed; %s", t, e)
            abort(404)
        ct = r.headers.get("Content-Type", "image/jpeg")
        if r.status_code >= 300 or not ct.startswith("image/"):
            r.close()
            abort(404)
        return send_file(r.raw, mimetype=ct, max_age=86400)

    return app


# ---------------- UI ----------------
def page_shell(title="ReelFetch"):
    return f"""<!doctype html>
<html lang="en"><head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1, viewport-fit=cover">
<meta name="theme-color" content="#0b0b0c">
<title>{html.escape(title)}</title>
<style>
:root {{ --panel:#15151a; --text:#f2f2f5; --muted:#a9a9b3; --line:#26262d; }}
*{{box-sizing:border-box}}
body {{
  margin:0; background:#0c0c0f; color:var(--text);
  font-family:system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
}}
main{{max-width:900px; margin:32px auto; padding:0 16px;}}
form{{display:flex;gap:10px;margin-bottom:16px}}
form input{{flex:1;padding:12px 14px;border-radius:12px;border:1px solid var(--line);background:var(--panel);color:var(--text);font-size:16px}}
.card{{background:var(--panel);border:1px solid var(--line);border-radius:16px;padding:18px}}
.row{{display:flex;gap:18px;flex-wrap:wrap}}
.thumb{{width:300px;max-width:100%;aspect-ratio:16/9;object-fit:cover;border-radius:12px;background:#000}}
.meta{{flex:1;min-width:240px}}
h1{{margin:0 0 6px;font-size:20px}}
h2, .note{{margin:0;color:var(--muted);font-size:14px;font-weight:400}}
.btns{{display:flex;flex-wrap:wrap;gap:10px;margin-top:14px}}
.btn, select{{border:1px solid var(--line);background:#1e1e24;color:var(--text);padding:10px 14px;border-radius:10px;text-decoration:none;font-size:14px}}
.btn[disabled], select[disabled]{{opacity:.5}}
.hidden{{display:none}}
</style>
</head><body>
<main>
  <form id="probeForm">
    <input id="url" type="url" placeholder="Paste a TikTok / YouTube / Facebook / Instagram link…" autocomplete="off">
    <button class="btn" id="go" type="submit">Analyze</button>
  </form>
  <div class="card hidden" id="result">
    <div class="row">
      <img class="thumb" id="thumb" alt="">
      <div class="meta">
        <h1 id="title"></h1>
        <h2 id="desc"></h2>
        <div class="btns">
          <select id="fmt"></select>
          <a class="btn" id="mp4" href="#">Download MP4</a>
          <a class="btn" id="mp3" href="#">Download MP3</a>
        </div>
      </div>
    </div>
  </div>
  <div class="card note" id="status">Paste a link above. Media is streamed straight from the source, nothing is stored.</div>
</main>
<script>
(function(){{
  const $ = (id) => document.getElementById(id);
  const form = $('probeForm'), input = $('url'), go = $('go'), status = $('status');
  const fmt = $('fmt'), mp4 = $('mp4'), mp3 = $('mp3');
  let current = null;

  function links(){{
    if (!current) return;
    const q = 'url=' + encodeURIComponent(current.url) + '&title=' + encodeURIComponent(current.title || '');
    mp4.href = '/download?' + q + (fmt.value ? '&format=' + encodeURIComponent(fmt.value) : '');
    mp3.href = '/audio?' + q;
  }}

  form.addEventListener('submit', async (e) => {{
    e.preventDefault();
    const v = (input.value || '').trim();
    if (!v) {{ alert('Paste a link first.'); return; }}
    go.disabled = true;
    status.classList.remove('hidden'); status.textContent = 'Analyzing…';
    try {{
      const r = await fetch('/probe', {{method:'POST', headers:{{'Content-Type':'application/json'}}, body: JSON.stringify({{url: v}})}});
      const data = await r.json();
      if (!r.ok || data.error) throw new Error(data.error || 'Analysis failed.');
      current = data;
      input.value = data.url;
      $('thumb').src = data.thumbnail ? '/thumbnail?url=' + encodeURIComponent(data.thumbnail) : '';
      $('title').textContent = data.title || 'Untitled';
      $('desc').textContent = (data.extractor || '') + (data.duration ? ' • ' + Math.round(data.duration) + 's' : '');
      fmt.innerHTML = '';
      if (!data.formats.length) {{
        const o = document.createElement('option'); o.value = ''; o.textContent = 'auto • MP4';
        fmt.appendChild(o); fmt.disabled = true;
      }} else {{
        fmt.disabled = false;
        data.formats.forEach(f => {{
          const o = document.createElement('option'); o.value = f.id;
          o.textContent = f.resolution + ' • MP4' + (f.filesize ? ' • ' + (f.filesize/1048576).toFixed(1) + ' MB' : '');
          fmt.appendChild(o);
        }});
        if (data.selected) fmt.value = data.selected;
      }}
      links();
      $('result').classList.remove('hidden'); status.classList.add('hidden');
    }} catch (err) {{
      status.textContent = '';
      alert(err.message || 'Analysis failed.');
    }} finally {{
      go.disabled = false;
    }}
  }});
  fmt.addEventListener('change', links);
}})();
</script>
</body></html>"""
