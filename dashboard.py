"""Dashboard rendering: table rows, chart series, trend lines and the HTML page."""

import json
from datetime import timezone
from html import escape
from typing import Optional

import pandas as pd

from models import InvestmentType


def format_time_remaining(seconds: int) -> str:
    """Human-readable wait time for the rate-limit countdown."""
    seconds = max(0, int(seconds))

    def plural(n, unit):
        return f"{n} {unit}{'' if n == 1 else 's'}"

    if seconds < 60:
        return plural(seconds, "second")
    if seconds < 3600:
        minutes, rem = divmod(seconds, 60)
        return plural(minutes, "minute") + (f" {plural(rem, 'second')}" if rem else "")
    hours, rem = divmod(seconds, 3600)
    minutes = rem // 60
    return plural(hours, "hour") + (f" {plural(minutes, 'minute')}" if minutes else "")


def table_rows(snapshots) -> list:
    """Newest-first rows for the history table."""
    rows = []
    for s in sorted(snapshots, key=lambda s: s.timestamp, reverse=True):
        rows.append({
            "investmentName": s.investment_name,
            "investmentType": s.investment_type.value,
            "amount": f"{s.amount:g}",
            "value": f"${s.value:,.2f}",
            "timestamp": s.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
            "updatable": s.investment_type is not InvestmentType.CUSTOM,
        })
    return rows


def chart_series(snapshots, selected: Optional[str] = None) -> dict:
    """{investment name: [{x: iso timestamp, y: value}, ...]} ordered by time."""
    if not snapshots:
        return {}
    df = pd.DataFrame([s.to_dict() for s in snapshots])
    if selected:
        df = df[df["investmentName"] == selected].copy()
    df["ts"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("ts", kind="stable")
    series = {}
    for name, group in df.groupby("investmentName", sort=False):
        series[name] = [{"x": ts, "y": float(v)} for ts, v in zip(group["timestamp"], group["value"])]
    return series


def trend_line(points: list) -> list:
    """Least-squares line through (time, value) points, returned as its two endpoints.

    Empty when there are fewer than two points or every point shares one instant.
    """
    if len(points) < 2:
        return []
    x = pd.to_datetime(pd.Series([p["x"] for p in points]), utc=True)
    x_ms = (x - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    x_ms = x_ms.astype("float64")
    y = pd.Series([float(p["y"]) for p in points])
    var_x = x_ms.var()
    if not var_x or pd.isna(var_x):
        return []
    slope = x_ms.cov(y) / var_x
    intercept = y.mean() - slope * x_ms.mean()
    ends = []
    for i in (0, len(points) - 1):
        ends.append({"x": points[i]["x"], "y": float(slope * x_ms.iloc[i] + intercept)})
    return ends


def trend_lines(series: dict) -> dict:
    return {name: trend_line(points) for name, points in series.items() if len(points) >= 2}


_TYPE_OPTIONS = [
    ("GOLD", "Gold (oz)"),
    ("SILVER", "Silver (oz)"),
    ("BTC", "Bitcoin"),
    ("ETH", "Ethereum"),
    ("LTC", "Litecoin"),
    ("SOL", "Solana"),
    ("XRP", "XRP"),
    ("CUSTOM", "Custom"),
]


def render_login_page(error: str = "") -> str:
    error_html = f'<p class="auth-error">{escape(error)}</p>' if error else ""
    return f"""<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"><title>Investment Tracker</title>
<style>:root{{--bg-primary:#09090b;--bg-card:#161619;--border-subtle:rgba(255,255,255,0.06);--accent-primary:#d4a017;--text-primary:#f1f5f9;--text-muted:#64748b;--danger:#f87171;}}
*{{box-sizing:border-box;margin:0;padding:0;}} body{{font-family:system-ui,sans-serif;background:var(--bg-primary);color:var(--text-primary);}}
.auth-screen{{display:flex;align-items:center;justify-content:center;min-height:100vh;}}
.auth-box{{background:var(--bg-card);border:1px solid var(--border-subtle);border-radius:16px;padding:40px;text-align:center;max-width:360px;width:90%;}}
.auth-box h1{{font-size:1.4rem;margin-bottom:8px;color:var(--accent-primary);}}
.auth-box p{{color:var(--text-muted);font-size:0.85rem;margin-bottom:16px;}}
.auth-box input{{margin:8px 0 16px;text-align:center;font-size:1.2rem;letter-spacing:0.3em;padding:12px;background:#1a1a1f;border:1px solid var(--border-subtle);color:var(--text-primary);border-radius:8px;width:100%;}}
.auth-box button{{width:100%;padding:12px;background:var(--accent-primary);color:#09090b;border:none;border-radius:8px;font-weight:600;cursor:pointer;}}
.auth-error{{color:var(--danger);font-size:0.85rem;margin-top:8px;}}
</style></head><body><div class="auth-screen"><div class="auth-box">
<h1>Investment Tracker</h1><p>Enter your PIN to continue</p>
<form method="post" action="/login"><input type="password" name="pin" placeholder="****" autofocus maxlength="20"><button type="submit">Unlock</button></form>{error_html}
</div></div></body></html>"""


def render_dashboard(data: dict, user: dict, saved: str = "") -> str:
    """Full page: entry form, investment selector, history table and value chart.

    data keys: snapshots, investments, selected, refreshed (names auto-updated on this load).
    """
    snapshots = data.get("snapshots", [])
    selected = data.get("selected")
    investments = data.get("investments", [])
    series = chart_series(snapshots, selected)
    # Escape < so investment names cannot close the script tag
    chart_payload = json.dumps({"series": series, "trend": trend_lines(series)}).replace("<", "\\u003c")

    type_options = "".join(f'<option value="{v}">{label}</option>' for v, label in _TYPE_OPTIONS)
    inv_options = '<option value="">All Investments</option>' + "".join(
        f'<option value="{escape(n)}"{" selected" if n == selected else ""}>{escape(n)}</option>' for n in investments
    )

    body_rows = []
    for r in table_rows(snapshots):
        button = (
            f'<button type="button" class="secondary" data-update="{escape(r["investmentName"])}">Update</button>'
            if r["updatable"] else '<span class="hint">manual</span>'
        )
        body_rows.append(
            f'<tr><td>{escape(r["investmentName"])}</td><td>{r["investmentType"]}</td><td>{r["amount"]}</td>'
            f'<td>{r["value"]}</td><td>{r["timestamp"]}</td><td>{button}</td></tr>'
        )
    table_html = "".join(body_rows) or '<tr><td colspan="6" class="hint">No data yet. Add an investment above.</td></tr>'

    notices = []
    if saved:
        notices.append(escape(saved))
    if data.get("refreshed"):
        notices.append("Auto-updated: " + escape(", ".join(data["refreshed"])))
    notice_html = f'<div class="notice">{" &middot; ".join(notices)}</div>' if notices else ""

    name = escape(user.get("displayName") or user.get("email") or user.get("id", ""))
    logout = '<a href="/logout">Log out</a>' if user.get("id") != "local" else ""

    return f"""<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"><title>Investment Tracker</title>
<script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.0/dist/chart.umd.min.js"></script>
<script src="https://cdn.jsdelivr.net/npm/luxon@3.4.4/build/global/luxon.min.js"></script>
<script src="https://cdn.jsdelivr.net/npm/chartjs-adapter-luxon@1.3.1/dist/chartjs-adapter-luxon.umd.min.js"></script>
<style>:root{{--bg-primary:#09090b;--bg-card:#161619;--border-subtle:rgba(255,255,255,0.06);--accent-primary:#d4a017;--text-primary:#f1f5f9;--text-muted:#64748b;--danger:#f87171;--success:#4ade80;}}
*{{box-sizing:border-box;}} body{{font-family:system-ui,sans-serif;background:var(--bg-primary);color:var(--text-primary);margin:0;padding:24px;}}
.card{{background:var(--bg-card);border:1px solid var(--border-subtle);border-radius:12px;padding:20px;margin-bottom:16px;}}
.card-title{{font-weight:600;margin-bottom:12px;}} .hint{{color:var(--text-muted);font-size:0.85rem;}}
header{{display:flex;justify-content:space-between;align-items:center;margin-bottom:16px;}} header h1{{color:var(--accent-primary);margin:0;font-size:1.4rem;}}
a{{color:var(--accent-primary);}} input,select{{padding:8px 10px;background:#1a1a1f;border:1px solid var(--border-subtle);color:var(--text-primary);border-radius:8px;}}
button{{padding:8px 14px;background:var(--accent-primary);color:#09090b;border:none;border-radius:8px;font-weight:600;cursor:pointer;}}
button.secondary{{background:transparent;color:var(--accent-primary);border:1px solid var(--accent-primary);}}
form.row{{display:flex;flex-wrap:wrap;gap:10px;align-items:center;}}
table{{width:100%;border-collapse:collapse;}} th,td{{text-align:left;padding:8px;border-bottom:1px solid var(--border-subtle);font-size:0.9rem;}}
.notice{{padding:10px 14px;border-radius:8px;background:rgba(74,222,128,0.1);color:var(--success);margin-bottom:16px;}}
#message.error{{color:var(--danger);}} #message.success{{color:var(--success);}}
</style></head><body>
<header><h1>Investment Tracker</h1><div class="hint">{name} {logout}</div></header>
{notice_html}
<div class="card"><div class="card-title">Record Investment</div>
<form id="investment-form" class="row">
  <input id="investmentName" placeholder="Name (no commas)" required>
  <select id="investmentType">{type_options}</select>
  <input id="amount" type="number" step="any" min="0" placeholder="Amount" required>
  <input id="customValue" type="number" step="any" min="0" placeholder="Total value (USD)" style="display:none">
  <button type="button" class="secondary" id="fetch-price">Fetch Price</button>
  <span id="price-display" class="hint"></span>
  <button type="submit">Save</button>
</form>
<p id="message" class="hint"></p></div>
<div class="card"><div class="card-title">History</div>
<form method="get" action="/" class="row" style="margin-bottom:12px;"><select name="investment" onchange="this.form.submit()">{inv_options}</select>
<a href="/api/export">Export to Excel</a></form>
<div style="position:relative;height:300px;"><canvas id="value-chart"></canvas></div>
<table><thead><tr><th>Investment</th><th>Type</th><th>Amount</th><th>Value</th><th>Updated</th><th></th></tr></thead>
<tbody>{table_html}</tbody></table></div>
<script>
const CHART = {chart_payload};
let currentPrice = null;
let countdownTimer = null;
const $ = (id) => document.getElementById(id);

function formatTimeRemaining(s) {{
  const p = (n, u) => n + " " + u + (n === 1 ? "" : "s");
  if (s < 60) return p(s, "second");
  if (s < 3600) {{ const m = Math.floor(s / 60), r = s % 60; return p(m, "minute") + (r ? " " + p(r, "second") : ""); }}
  const h = Math.floor(s / 3600), m = Math.floor((s % 3600) / 60); return p(h, "hour") + (m ? " " + p(m, "minute") : "");
}}
function showMessage(text, type) {{ const el = $("message"); el.textContent = text; el.className = type || "hint"; }}
function showCountdown(base, seconds) {{
  if (countdownTimer) clearInterval(countdownTimer);
  let left = seconds;
  showMessage(base + " " + formatTimeRemaining(left), "error");
  countdownTimer = setInterval(() => {{
    left--;
    if (left <= 0) {{ clearInterval(countdownTimer); showMessage("You can try again now", "success"); }}
    else showMessage(base + " " + formatTimeRemaining(left), "error");
  }}, 1000);
}}

$("investmentType").addEventListener("change", () => {{
  const custom = $("investmentType").value === "CUSTOM";
  $("customValue").style.display = custom ? "" : "none";
  $("fetch-price").style.display = custom ? "none" : "";
  currentPrice = null; $("price-display").textContent = "";
}});

$("fetch-price").addEventListener("click", async () => {{
  const t = $("investmentType").value;
  const url = (t === "GOLD" || t === "SILVER") ? "/api/metals/" + t : "/api/crypto/" + t;
  const r = await fetch(url); const res = await r.json();
  if (r.ok && res.price) {{ currentPrice = res.price; $("price-display").textContent = "$" + res.price.toLocaleString(undefined, {{maximumFractionDigits: 2}}); }}
  else showMessage(res.error || "Failed to fetch price", "error");
}});

$("investment-form").addEventListener("submit", async (e) => {{
  e.preventDefault();
  const t = $("investmentType").value, amount = parseFloat($("amount").value);
  let value;
  if (t === "CUSTOM") {{ value = parseFloat($("customValue").value); if (!value) {{ showMessage("Please enter a custom value", "error"); return; }} }}
  else {{ if (!currentPrice) {{ showMessage("Please fetch the current price first", "error"); return; }} value = currentPrice * amount; }}
  const r = await fetch("/api/save", {{method: "POST", headers: {{"Content-Type": "application/json"}},
    body: JSON.stringify({{investmentName: $("investmentName").value.trim(), investmentType: t, amount, value}})}});
  const res = await r.json();
  if (r.ok && res.success) window.location = "/?saved=Investment+saved";
  else showMessage(res.error || "Failed to save data", "error");
}});

document.querySelectorAll("[data-update]").forEach((btn) => btn.addEventListener("click", async () => {{
  const name = btn.dataset.update;
  const r = await fetch("/api/update", {{method: "POST", headers: {{"Content-Type": "application/json"}}, body: JSON.stringify({{investmentName: name}})}});
  const res = await r.json();
  if (r.ok && res.success) window.location = "/?saved=" + encodeURIComponent(name + " updated: $" + res.totalValue.toFixed(2));
  else if (r.status === 429 && res.secondsRemaining) showCountdown(name + " was recently updated. Please wait", res.secondsRemaining);
  else showMessage(res.error || "Update failed", "error");
}}));

const palette = ["#d4a017", "#60a5fa", "#4ade80", "#f472b6", "#a78bfa", "#f87171", "#2dd4bf", "#fb923c"];
const datasets = [];
Object.entries(CHART.series).forEach(([name, pts], i) => {{
  const color = palette[i % palette.length];
  datasets.push({{label: name, data: pts, borderColor: color, backgroundColor: color, tension: 0.1}});
  if (CHART.trend[name] && CHART.trend[name].length) datasets.push({{label: name + " trend", data: CHART.trend[name], borderColor: color, borderDash: [6, 4], pointRadius: 0, fill: false}});
}});
new Chart($("value-chart"), {{type: "line", data: {{datasets}},
  options: {{responsive: true, maintainAspectRatio: false, scales: {{x: {{type: "time"}}, y: {{ticks: {{callback: (v) => "$" + v.toLocaleString()}}}}}}}}}});
</script></body></html>"""
