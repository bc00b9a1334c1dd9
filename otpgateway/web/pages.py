from __future__ import annotations

import json
from html import escape
from string import Template

_LAYOUT = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>$title</title>
  <style>
    body { font-family: sans-serif; max-width: 28rem; margin: 3rem auto; padding: 0 1rem; color: #333; }
    .message { padding: .6rem .8rem; background: #fff4e5; border-radius: 4px; }
    input[type=text] { width: 100%; padding: .5rem; font-size: 1.2rem; box-sizing: border-box; }
    button { margin-top: 1rem; padding: .5rem 1rem; }
  </style>
</head>
<body>
  <h1>$title</h1>
  $content
</body>
</html>
"""
)

_MESSAGE = Template("<p>$description</p>$script")

# Tells the window that opened the verification popup that it is done.
_CLOSED_SCRIPT = Template(
    """<script>
  if (window.opener) {
    window.opener.postMessage({namespace: $namespace, id: $id, closed: true}, "*");
    setTimeout(function () { window.close(); }, 1500);
  }
</script>"""
)

_OTP_FORM = Template(
    """<p>$channel_desc</p>
$message
<form method="post" action="$action_url">
  <input type="hidden" name="action" value="check">
  <input type="text" name="otp" maxlength="$max_otp_len" autocomplete="one-time-code" autofocus required>
  <button type="submit">Verify</button>
</form>
<form method="post" action="$action_url">
  <input type="hidden" name="action" value="resend">
  <button type="submit">Resend code</button>
</form>"""
)

_ADDRESS_FORM = Template(
    """<p>$address_desc</p>
$message
<form method="post" action="$action_url">
  <label>$address_name
    <input type="text" name="to" maxlength="$max_address_len" autofocus required>
  </label>
  <button type="submit">Continue</button>
</form>"""
)


def _js_string(value: str) -> str:
    return json.dumps(value).replace("<", "\\u003c")


def _message_block(message: str) -> str:
    if not message:
        return ""
    return f'<p class="message">{escape(message)}</p>'


def _page(title: str, content: str) -> str:
    return _LAYOUT.substitute(title=escape(title), content=content)


def message_page(title: str, description: str, *, closed_namespace: str = "", closed_id: str = "") -> str:
    script = ""
    if closed_id:
        script = _CLOSED_SCRIPT.substitute(namespace=_js_string(closed_namespace), id=_js_string(closed_id))
    return _page(title, _MESSAGE.substitute(description=escape(description), script=script))


def otp_page(
    *,
    title: str,
    channel_desc: str,
    action_url: str,
    max_otp_len: int,
    message: str = "",
) -> str:
    content = _OTP_FORM.substitute(
        channel_desc=escape(channel_desc),
        message=_message_block(message),
        action_url=escape(action_url),
        max_otp_len=int(max_otp_len) or 64,
    )
    return _page(title, content)


def address_page(
    *,
    title: str,
    address_name: str,
    address_desc: str,
    action_url: str,
    max_address_len: int,
    message: str = "",
) -> str:
    content = _ADDRESS_FORM.substitute(
        address_name=escape(address_name),
        address_desc=escape(address_desc),
        message=_message_block(message),
        action_url=escape(action_url),
        max_address_len=int(max_address_len) or 200,
    )
    return _page(title, content)
