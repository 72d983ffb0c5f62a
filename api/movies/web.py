from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter()

@router.get("/", response_class=HTMLResponse)
def home():
    return HTMLResponse("""
<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Movie Catalog</title>
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <style>
    body { font-family: Arial, sans-serif; margin: 0; }
    .bar { padding: 12px; display: flex; gap: 8px; align-items: center; border-bottom: 1px solid #ddd; }
    input { flex: 1; padding: 10px; font-size: 14px; }
    button { padding: 10px 14px; }
    #list { display: grid; grid-template-columns: repeat(auto-fill, minmax(180px, 1fr)); gap: 12px; padding: 12px; }
    .card { border: 1px solid #ddd; padding: 8px; }
    .card img { width: 100%; }
    .small { font-size: 12px; color: #444; }
    .err { color: #b00020; padding: 12px; }
    .pager { padding: 12px; display: flex; gap: 8px; align-items: center; }
  </style>
</head>
<body>
  <div class="bar">
    <input id="q" placeholder="Search your collection (title, description, overview)" />
    <button id="go">Search</button>
  </div>
  <div id="status" class="small" style="padding: 0 12px;"></div>
  <div id="list"></div>
  <div class="pager">
    <button id="prev">Previous</button>
    <span id="page" class="small"></span>
    <button id="next">Next</button>
  </div>

  <script>
    const list = document.getElementById('list');
    const status = document.getElementById('status');
    const pageLabel = document.getElementById('page');
    const q = document.getElementById('q');
    let page = 1;
    let totalPages = 0;

    function esc(s) {
      return String(s ?? '').replace(/[&<>"']/g, c => ({'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;'}[c]));
    }

    function poster(m) {
      if (m.image_path) return '/movies/' + m.id + '/image';
      if (m.poster_path && m.poster_path.startsWith('http')) return m.poster_path;
      if (m.poster_path) return 'https://image.tmdb.org/t/p/w500' + m.poster_path;
      return '';
    }

    async function load() {
      const params = new URLSearchParams({ q: q.value.trim(), page: String(page), limit: '24' });
      const res = await fetch('/movies/search?' + params.toString());
      const data = await res.json();
      if (!res.ok) {
        list.innerHTML = '<div class="err">' + esc(data.detail || 'Error') + '</div>';
        return;
      }

      totalPages = data.meta.total_pages;
      status.textContent = data.meta.total + ' movie(s)';
      pageLabel.textContent = 'Page ' + data.meta.page + ' of ' + Math.max(totalPages, 1);
      list.innerHTML = data.data.map(m => `
        <div class="card">
          ${poster(m) ? '<img src="' + esc(poster(m)) + '" alt="" />' : ''}
          <div><b>${esc(m.title)}</b> (${esc(m.year)})</div>
          <div class="small">${esc(m.overview || m.description)}</div>
        </div>
      `).join('');
    }

    document.getElementById('go').addEventListener('click', () => { page = 1; load(); });
    q.addEventListener('keydown', (e) => { if (e.key === 'Enter') { page = 1; load(); } });
    document.getElementById('prev').addEventListener('click', () => { if (page > 1) { page--; load(); } });
    document.getElementById('next').addEventListener('click', () => { if (page < totalPages) { page++; load(); } });
    load();
  </script>
</body>
</html>
    """)
