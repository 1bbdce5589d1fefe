"""HTML for the consent screen and the non-redirectable error page.

Every value interpolated here comes from the request or the registry and
is escaped; the hidden fields are re-validated on POST anyway.
"""

from __future__ import annotations

import html

from wpauth.services import scope_policy
from wpauth.services.authorization_server import ConsentRequired

_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: system-ui, -apple-system, sans-serif;
      display: flex; justify-content: center; align-items: center;
      min-height: 100vh; background: #f0f0f1;
    }}
    .card {{
      background: #fff; padding: 2rem; border-radius: 4px;
      box-shadow: 0 1px 3px rgba(0,0,0,.13); width: 420px;
    }}
    h1 {{ font-size: 1.25rem; margin-bottom: 1rem; }}
    p {{ margin-bottom: 1rem; color: #50575e; }}
    ul {{ list-style: none; margin-bottom: 1.5rem; }}
    li {{ padding: .5rem 0; border-bottom: 1px solid #f0f0f1; }}
    li small {{ display: block; color: #646970; }}
    .actions {{ display: flex; gap: .5rem; }}
    button {{
      flex: 1; padding: .6rem; border-radius: 4px; font-size: .95rem;
      cursor: pointer; border: 1px solid #2271b1;
    }}
    .approve {{ background: #2271b1; color: #fff; }}
    .deny {{ background: #fff; color: #2271b1; }}
    .error {{ color: #d63638; }}
  </style>
</head>
<body>
  <div class="card">
{body}
  </div>
</body>
</html>
"""


def _hidden(name: str, value: str | None) -> str:
    return (
        f'<input type="hidden" name="{name}" '
        f'value="{html.escape(value or "", quote=True)}">'
    )


def render_consent(decision: ConsentRequired, *, site_name: str) -> str:
    app = html.escape(decision.client.name)
    site = html.escape(site_name)
    req = decision.request

    items = "\n".join(
        "      <li>{icon} <strong>{label}</strong><small>{desc}</small></li>".format(
            icon=scope_policy.icon(s),
            label=html.escape(scope_policy.label(s)),
            desc=html.escape(scope_policy.describe(s) or ""),
        )
        for s in decision.scopes
    )
    hidden = "\n".join(
        "      " + _hidden(name, value)
        for name, value in (
            ("client_id", req.client_id),
            ("redirect_uri", req.redirect_uri),
            ("state", req.state),
            ("scope", " ".join(decision.scopes)),
            ("code_challenge", req.code_challenge),
            ("code_challenge_method", req.code_challenge_method),
        )
    )
    body = f"""\
    <h1>Authorize {app}</h1>
    <p><strong>{app}</strong> wants to access your {site} account.</p>
    <p>Logged in as <strong>{html.escape(decision.principal.display_name)}</strong>.
    This application will be able to:</p>
    <ul>
{items}
    </ul>
    <form method="post" action="/oauth2/v1/authorize">
{hidden}
      <div class="actions">
        <button class="approve" type="submit" name="oauth2_consent" value="approve">Approve</button>
        <button class="deny" type="submit" name="oauth2_consent" value="deny">Deny</button>
      </div>
    </form>"""
    return _PAGE.format(title=f"Authorize {app} &lsaquo; {site}", body=body)


def render_error(error: str, description: str, *, site_name: str) -> str:
    body = (
        '    <h1 class="error">Authorization error</h1>\n'
        f"    <p><code>{html.escape(error)}</code></p>\n"
        f"    <p>{html.escape(description)}</p>"
    )
    return _PAGE.format(title=f"Error &lsaquo; {html.escape(site_name)}", body=body)
