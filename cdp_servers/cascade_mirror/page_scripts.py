"""In-page JavaScript evaluated inside cascade targets.

Every builder returns a self-invoking expression suitable for
`Runtime.evaluate` with `returnByValue`. User-provided strings are embedded
through `json.dumps` only.
"""

from __future__ import annotations

import json

# Shared helpers, prepended to scripts that need them.
_HELPERS = r"""
  const __isWorkbench = () => !!document.querySelector('.monaco-workbench, #workbench')
    || !!(document.body && String(document.body.className || '').includes('monaco-workbench'));
  const __norm = (s) => String(s || '').trim().toLowerCase().replace(/\s+/g, ' ');
  const __deepQueryAll = (root, selector) => {
    const out = [];
    const seen = new Set();
    const walk = (node) => {
      if (!node) return;
      try {
        if (node.querySelectorAll) {
          for (const el of node.querySelectorAll(selector)) {
            if (!seen.has(el)) { seen.add(el); out.push(el); }
          }
        }
      } catch (e) { }
      for (const child of Array.from(node.children || [])) {
        if (child.shadowRoot) walk(child.shadowRoot);
      }
    };
    walk(root);
    return out;
  };
  const __visible = (el, inViewport) => {
    if (!el || !el.getBoundingClientRect) return false;
    const r = el.getBoundingClientRect();
    if (r.width === 0 || r.height === 0) return false;
    const st = window.getComputedStyle(el);
    if (st && (st.visibility === 'hidden' || st.display === 'none')) return false;
    return !inViewport || (r.bottom >= 0 && r.top <= window.innerHeight);
  };
  const __press = (el) => {
    el.dispatchEvent(new PointerEvent('pointerdown', { bubbles: true, cancelable: true }));
    el.dispatchEvent(new PointerEvent('pointerup', { bubbles: true, cancelable: true }));
    el.dispatchEvent(new MouseEvent('mousedown', { bubbles: true, cancelable: true }));
    el.dispatchEvent(new MouseEvent('mouseup', { bubbles: true, cancelable: true }));
    el.click();
  };
  const __findRoot = (selectors) => {
    for (const sel of selectors) {
      try {
        const el = document.querySelector(sel);
        if (el) return el;
      } catch (e) { }
    }
    return document.body || document.documentElement;
  };
"""

THEME_VARIABLES: list[str] = [
    "--vscode-editor-background",
    "--vscode-editor-foreground",
    "--vscode-panel-background",
    "--vscode-sideBar-background",
    "--vscode-titleBar-activeBackground",
    "--vscode-tab-activeBackground",
    "--vscode-tab-inactiveBackground",
    "--vscode-input-background",
    "--vscode-input-foreground",
    "--vscode-input-border",
    "--vscode-button-background",
    "--vscode-button-hoverBackground",
    "--vscode-focusBorder",
    "--vscode-widget-border",
    "--vscode-editorWidget-background",
    "--vscode-editorWidget-border",
]

COMPOSER_CONTAINER_SELECTORS: list[str] = [
    "form",
    '[role="form"]',
    '[data-testid*="composer" i]',
    '[data-testid*="prompt" i]',
    '[data-testid*="input" i]',
    '[data-testid*="chat-input" i]',
    '[aria-label*="prompt" i]',
    '[aria-label*="message" i]',
    '[class*="composer" i]',
    '[class*="prompt" i]',
    '[class*="input" i]',
    '[class*="chat-input" i]',
    "footer",
]

MESSAGE_ACTIONS_SELECTOR = 'button[aria-label="Message actions"], button[title="Message actions"]'
BACK_SELECTORS: list[str] = [
    'button[aria-label="Back"]',
    'button[aria-label^="Back"]',
    '[role="button"][aria-label="Back"]',
    '[role="button"][aria-label^="Back"]',
    'button[title="Back"]',
    '[role="button"][title="Back"]',
]
HISTORY_BUTTON_SELECTOR = 'button[title="Past conversations"]'
SESSION_ITEM_SELECTOR = 'button[class*="sessionItem"]'
MODE_BUTTON_TITLE = "switch modes"


def _iife(body: str, *, is_async: bool = False, helpers: bool = True) -> str:
    prefix = "async " if is_async else ""
    return f"({prefix}() => {{{_HELPERS if helpers else ''}\n{body}\n}})()"


def metadata_script(root_selectors: list[str], min_text_len: int) -> str:
    return _iife(
        f"""
  if (__isWorkbench()) return {{ found: false }};
  const root = __findRoot({json.dumps(root_selectors)});
  if (!root) return {{ found: false }};
  const text = (root.innerText || '').trim();
  if (text.length < {int(min_text_len)}) return {{ found: false }};
  let title = document.title || null;
  for (const sel of ['h1', 'h2', '[data-testid*="title" i]', '[class*="title" i]']) {{
    const el = document.querySelector(sel);
    if (el && el.textContent && el.textContent.trim().length > 2) {{ title = el.textContent.trim(); break; }}
  }}
  return {{ found: true, chatTitle: title || 'Claude', isActive: document.hasFocus() }};
"""
    )


def css_script(wrapper_id: str) -> str:
    wid = json.dumps("$1#" + wrapper_id)
    return _iife(
        f"""
  if (__isWorkbench()) return {{ css: '' }};
  let css = '';
  for (const sheet of Array.from(document.styleSheets)) {{
    try {{
      for (const rule of Array.from(sheet.cssRules)) {{
        css += rule.cssText
          .replace(/(^|[\\s,}}])body(?=[\\s,{{])/gi, {wid})
          .replace(/(^|[\\s,}}])html(?=[\\s,{{])/gi, {wid})
          .replace(/(^|[\\s,}}]):root(?=[\\s,{{])/gi, {wid}) + '\\n';
      }}
    }} catch (e) {{ }}
  }}
  return {{ css }};
"""
    )


def capture_script(
    *,
    root_selectors: list[str],
    input_selectors: list[str],
    wrapper_id: str,
    keep_inputs: bool = False,
) -> str:
    return _iife(
        f"""
  if (__isWorkbench()) return {{ error: 'workbench' }};
  const keepInputs = {json.dumps(bool(keep_inputs))};
  const root = __findRoot({json.dumps(root_selectors)});
  if (!root) return {{ error: 'root not found' }};

  // Descend through single dominant DIV children to the turns container.
  let turns = root;
  for (let d = 0; d < 15; d++) {{
    const kids = Array.from(turns.children).filter(c => c.tagName === 'DIV');
    if (!kids.length) break;
    let best = kids[0], bestLen = (best.innerText || '').length, total = bestLen;
    for (const k of kids.slice(1)) {{
      const len = (k.innerText || '').length;
      total += len;
      if (len > bestLen) {{ best = k; bestLen = len; }}
    }}
    if (kids.length <= 2 || bestLen > total * 0.7) turns = best; else break;
  }}

  root.querySelectorAll('[data-user-turn]').forEach(el => el.removeAttribute('data-user-turn'));
  const direct = new Set(Array.from(turns.children).filter(c => c.tagName === 'DIV'));
  const marked = [];
  root.querySelectorAll({json.dumps(MESSAGE_ACTIONS_SELECTOR)}).forEach(btn => {{
    let cur = btn;
    for (let i = 0; i < 20 && cur && cur !== root; i++) {{
      if (direct.has(cur)) {{
        if (!marked.includes(cur)) {{ cur.setAttribute('data-user-turn', 'true'); marked.push(cur); }}
        break;
      }}
      cur = cur.parentElement;
    }}
  }});

  const wrapper = document.createElement('div');
  wrapper.id = {json.dumps(wrapper_id)};
  const container = document.body || document.documentElement;
  if (container && container.children && container.children.length) {{
    Array.from(container.children).forEach(child => {{
      try {{ wrapper.appendChild(child.cloneNode(true)); }} catch (e) {{ }}
    }});
  }} else {{
    wrapper.appendChild(root.cloneNode(true));
  }}
  marked.forEach(el => el.removeAttribute('data-user-turn'));

  const userTurns = Array.from(wrapper.querySelectorAll('[data-user-turn="true"]'));
  userTurns.forEach(el => {{
    el.setAttribute('data-msg-type', 'user');
    el.setAttribute('data-msg-styled', 'true');
  }});
  userTurns.forEach(el => {{
    if (!el.parentElement) return;
    Array.from(el.parentElement.children).forEach(sib => {{
      if (sib === el || sib.tagName !== 'DIV') return;
      if (sib.getAttribute('data-user-turn') === 'true' || sib.getAttribute('data-msg-styled') === 'true') return;
      if ((sib.innerText || sib.textContent || '').trim().length < 2) return;
      sib.setAttribute('data-msg-type', 'assistant');
      sib.setAttribute('data-msg-styled', 'true');
    }});
  }});

  const drop = (sel) => {{ try {{ wrapper.querySelectorAll(sel).forEach(el => el.remove()); }} catch (e) {{ }} }};
  if (!keepInputs) {{
    {json.dumps(input_selectors)}.forEach(drop);
    {json.dumps(COMPOSER_CONTAINER_SELECTORS)}.forEach(drop);
  }}
  ['script', 'noscript', 'link[rel="stylesheet"]', 'style'].forEach(drop);

  // Diff editors become plain-text diffs.
  const lineText = (el) => (el.textContent || '').replace(/\\u00a0/g, ' ');
  const markedLines = (editor, kinds) => {{
    const idx = new Set();
    if (!editor) return idx;
    const overlays = editor.querySelector('.view-overlays');
    const sel = kinds.map(k => `[class*="${{k}}"]`).join(', ');
    if (overlays) {{
      Array.from(overlays.children).forEach((child, i) => {{
        const cls = String(child.className || '');
        if (kinds.some(k => cls.includes(k)) || (child.querySelector && child.querySelector(sel))) idx.add(i);
      }});
    }}
    if (!idx.size) {{
      const tops = new Set();
      editor.querySelectorAll(sel).forEach(el => {{
        const m = (el.getAttribute('style') || '').match(/top:\\s*(\\d+(?:\\.\\d+)?px)/);
        if (m) tops.add(m[1]);
      }});
      editor.querySelectorAll('.view-line').forEach((vl, i) => {{
        const m = (vl.getAttribute('style') || '').match(/top:\\s*(\\d+(?:\\.\\d+)?px)/);
        if (m && tops.has(m[1])) idx.add(i);
      }});
    }}
    return idx;
  }};
  const outerBlock = (el) => {{
    let p = el.parentElement;
    while (p && p !== wrapper) {{
      if (p.classList && p.classList.contains('W')) return p;
      p = p.parentElement;
    }}
    return el;
  }};
  const diffBlock = (text) => {{
    const pre = document.createElement('pre');
    pre.className = 'vsc-diff-block';
    const code = document.createElement('code');
    code.textContent = text;
    pre.appendChild(code);
    return pre;
  }};
  const diffTargets = new Map();
  wrapper.querySelectorAll('.monaco-diff-editor').forEach(el => {{
    const target = outerBlock(el);
    if (!diffTargets.has(target)) diffTargets.set(target, el);
  }});
  diffTargets.forEach((diffEl, target) => {{
    try {{
      const mod = diffEl.querySelector('.editor.modified');
      const orig = diffEl.querySelector('.editor.original');
      const inserted = markedLines(mod, ['line-insert', 'char-insert']);
      const deletedIdx = markedLines(orig, ['line-delete', 'char-delete']);
      const deleted = [];
      if (orig) orig.querySelectorAll('.view-line').forEach((vl, i) => {{ if (deletedIdx.has(i)) deleted.push(lineText(vl)); }});
      const lines = [];
      if (mod) mod.querySelectorAll('.view-line').forEach((vl, i) => lines.push({{ text: lineText(vl), add: inserted.has(i) }}));
      if (!lines.length) {{
        const ed = mod || orig;
        const t = ed ? lineText(ed).trim() : '';
        if (t) t.split('\\n').forEach(l => lines.push({{ text: l, add: false }}));
      }}
      const out = [];
      let deletesDone = false;
      for (const l of lines) {{
        if (l.add && !deletesDone && deleted.length) {{ deleted.forEach(d => out.push('- ' + d)); deletesDone = true; }}
        out.push((l.add ? '+ ' : '  ') + l.text);
      }}
      if (!deletesDone) deleted.forEach(d => out.push('- ' + d));
      if (!out.length) {{
        const t = lineText(target).trim();
        if (t) t.split('\\n').forEach(l => out.push('  ' + l));
      }}
      target.replaceWith(diffBlock(out.length ? out.join('\\n') : '(empty diff)'));
    }} catch (e) {{
      try {{ target.replaceWith(diffBlock(lineText(target) || '(diff)')); }} catch (e2) {{ }}
    }}
  }});
  Array.from(wrapper.querySelectorAll('.monaco-diff-editor, .monaco-editor')).forEach(el => {{
    try {{ outerBlock(el).replaceWith(diffBlock(lineText(el).trim() || '(diff)')); }}
    catch (e) {{ try {{ el.remove(); }} catch (e2) {{ }} }}
  }});

  const bodyStyles = window.getComputedStyle(document.body || document.documentElement);
  const rootStyles = window.getComputedStyle(root);
  const docStyles = window.getComputedStyle(document.documentElement);
  const codeEl = document.querySelector('pre code, code, .monaco-editor, .monaco-editor .view-lines');
  const codeStyles = codeEl ? window.getComputedStyle(codeEl) : null;
  const theme = {{}};
  {json.dumps(THEME_VARIABLES)}.forEach(key => {{
    const v = docStyles.getPropertyValue(key);
    if (v && v.trim()) theme[key] = v.trim();
  }});
  return {{
    html: wrapper.outerHTML,
    bodyBg: bodyStyles.backgroundColor,
    bodyColor: bodyStyles.color,
    textColor: rootStyles.color,
    fontFamily: rootStyles.fontFamily,
    fontSize: rootStyles.fontSize,
    lineHeight: rootStyles.lineHeight,
    codeFontFamily: codeStyles ? codeStyles.fontFamily : null,
    codeFontSize: codeStyles ? codeStyles.fontSize : null,
    vscodeTheme: theme
  }};
"""
    )


def inject_script(text: str, *, input_selectors: list[str], send_selectors: list[str]) -> str:
    """Type `text` into the best-scoring editor and submit it.

    Returns `{ok, method}`; when the page refuses DOM insertion the result asks
    the caller to fall back to synthetic input (`useCdpInsert`/`useCdpEnter`).
    """
    return _iife(
        f"""
  const wanted = {json.dumps(str(text))};
  const collect = (sels) => sels.flatMap(sel => __deepQueryAll(document, sel));
  const isEditable = (el) => {{
    if (!el) return false;
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT' || el.isContentEditable) return true;
    const attr = el.getAttribute && el.getAttribute('contenteditable');
    return attr === '' || attr === 'true';
  }};
  const nestedEditable = (el) => {{
    if (!el || !el.querySelectorAll) return null;
    for (const c of el.querySelectorAll('textarea, input[type="text"], input[role="textbox"], [contenteditable="true"], [contenteditable=""], [role="textbox"]')) {{
      if (isEditable(c) && __visible(c, true)) return c;
    }}
    return null;
  }};
  const scoreEditor = (el) => {{
    const r = el.getBoundingClientRect();
    let s = r.width * r.height - Math.abs(window.innerHeight - r.bottom) * 5;
    const ph = __norm(el.getAttribute('placeholder'));
    const aria = __norm(el.getAttribute('aria-label'));
    if (ph.includes('message') || ph.includes('prompt')) s += 5000;
    if (aria.includes('message') || aria.includes('prompt')) s += 5000;
    return s;
  }};
  const seen = new Set();
  const editors = [];
  for (const el of collect({json.dumps(input_selectors)})) {{
    const c = isEditable(el) ? el : nestedEditable(el);
    if (c && !seen.has(c)) {{ seen.add(c); editors.push(c); }}
  }}
  let editor = null, best = -Infinity;
  for (const el of editors) {{
    if (!__visible(el, true)) continue;
    const s = scoreEditor(el);
    if (s > best) {{ best = s; editor = el; }}
  }}
  if (!editor) return {{ ok: false, reason: 'no editor found' }};

  editor.focus();
  const plain = editor.tagName === 'TEXTAREA' || editor.tagName === 'INPUT';
  if (plain) {{
    const proto = editor.tagName === 'TEXTAREA' ? window.HTMLTextAreaElement.prototype : window.HTMLInputElement.prototype;
    const setter = Object.getOwnPropertyDescriptor(proto, 'value')?.set;
    if (setter) setter.call(editor, wanted); else editor.value = wanted;
  }} else {{
    const sel = window.getSelection();
    const range = document.createRange();
    range.selectNodeContents(editor);
    if (sel) {{ sel.removeAllRanges(); sel.addRange(range); }}
    try {{ document.execCommand('insertText', false, wanted); }}
    catch (e) {{ return {{ ok: true, method: 'cdp', useCdpInsert: true, useCdpEnter: true }}; }}
  }}
  editor.dispatchEvent(new Event('input', {{ bubbles: true }}));
  editor.dispatchEvent(new Event('change', {{ bubbles: true }}));

  const inserted = plain ? (editor.value || '') === wanted : (editor.innerText || editor.textContent || '').includes(wanted);
  if (!inserted) return {{ ok: true, method: 'cdp', useCdpInsert: true, useCdpEnter: true }};

  await new Promise(r => setTimeout(r, 120));
  const sendBtn = collect({json.dumps(send_selectors)}).find(b => __visible(b, true));
  if (sendBtn) {{ __press(sendBtn); return {{ ok: true, method: 'button' }}; }}

  const key = {{ bubbles: true, cancelable: true, key: 'Enter', code: 'Enter', keyCode: 13, which: 13 }};
  editor.dispatchEvent(new KeyboardEvent('keydown', key));
  editor.dispatchEvent(new KeyboardEvent('keyup', key));
  return {{ ok: true, method: 'enter' }};
""",
        is_async=True,
    )


def click_back_script() -> str:
    return _iife(
        f"""
  let btn = null;
  for (const sel of {json.dumps(BACK_SELECTORS)}) {{
    btn = document.querySelector(sel);
    if (btn) break;
  }}
  if (!btn) return {{ ok: false, reason: 'Back button not found' }};
  __press(btn);
  return {{ ok: true }};
"""
    )


def click_by_text_script(text: str) -> str:
    return _iife(
        f"""
  const wanted = __norm({json.dumps(str(text))});
  if (!wanted) return {{ ok: false, reason: 'empty text' }};
  let best = null, bestScore = -Infinity;
  for (const el of document.querySelectorAll('button, [role="button"], a, [tabindex], li')) {{
    if (!__visible(el, true)) continue;
    const label = __norm(el.innerText || el.textContent || '');
    if (!label) continue;
    let s = -Math.abs(label.length - wanted.length);
    if (label === wanted) s += 1000;
    if (label.includes(wanted)) s += 500;
    if (wanted.includes(label)) s += 200;
    if (s > bestScore) {{ bestScore = s; best = {{ el, label }}; }}
  }}
  if (!best) return {{ ok: false, reason: 'no match' }};
  __press(best.el);
  return {{ ok: true, matched: best.label }};
"""
    )


def click_view_all_script() -> str:
    return _iife(
        """
  const wanted = 'view all';
  const sels = ['button', '[role="button"]', '[role="menuitem"]', 'a', 'li', 'div',
    '[aria-label*="view all" i]', '[title*="view all" i]'];
  let best = null, bestScore = -Infinity;
  for (const el of sels.flatMap(sel => __deepQueryAll(document, sel))) {
    if (!__visible(el, false)) continue;
    const text = __norm(el.innerText || el.textContent || '');
    const combined = [text, __norm(el.getAttribute && el.getAttribute('aria-label')),
      __norm(el.getAttribute && el.getAttribute('title'))].filter(Boolean).join(' ');
    if (!combined.includes(wanted)) continue;
    let s = 600;
    if (combined === wanted) s += 1000;
    if (combined.includes('view all task')) s += 400;
    if (el.tagName === 'BUTTON') s += 50;
    if (el.getAttribute && el.getAttribute('role') === 'button') s += 30;
    if (text.length) s += Math.max(0, 80 - text.length);
    if (s > bestScore) { bestScore = s; best = el; }
  }
  if (!best) {
    const walker = document.createTreeWalker(document.body || document.documentElement, NodeFilter.SHOW_ELEMENT);
    for (let node = walker.nextNode(); node; node = walker.nextNode()) {
      if (!__norm(node.innerText || node.textContent || '').includes(wanted)) continue;
      const clickable = node.closest && node.closest('button, [role="button"], [role="menuitem"], a');
      if (clickable && __visible(clickable, false)) { best = clickable; break; }
    }
  }
  if (!best) return { ok: false, reason: 'View all not found' };
  try { best.scrollIntoView({ block: 'center', behavior: 'instant' }); } catch (e) { }
  __press(best);
  return { ok: true };
"""
    )


def _mode_button_js() -> str:
    return (
        "Array.from(document.querySelectorAll('button'))"
        f".find(b => (b.getAttribute('title') || '').includes({json.dumps(MODE_BUTTON_TITLE)}))"
    )


def current_mode_script() -> str:
    return _iife(
        f"""
  const btn = {_mode_button_js()};
  return {{ found: !!btn, mode: btn ? (btn.textContent || '').trim() : null }};
""",
        helpers=False,
    )


def switch_mode_script() -> str:
    return _iife(
        f"""
  const btn = {_mode_button_js()};
  if (!btn) return {{ ok: false, error: 'no mode button' }};
  btn.click();
  await new Promise(r => setTimeout(r, 150));
  const updated = {_mode_button_js()};
  return {{ ok: true, mode: updated ? (updated.textContent || '').trim() : null }};
""",
        is_async=True,
        helpers=False,
    )


def toggle_history_script() -> str:
    return _iife(
        f"""
  const btn = document.querySelector({json.dumps(HISTORY_BUTTON_SELECTOR)});
  if (!btn) return {{ ok: false, error: 'no button' }};
  btn.click();
  return {{ ok: true }};
""",
        helpers=False,
    )


def list_conversations_script() -> str:
    return _iife(
        f"""
  const items = Array.from(document.querySelectorAll({json.dumps(SESSION_ITEM_SELECTOR)})).map(btn => {{
    const nameEl = btn.querySelector('[class*="sessionName"]');
    const timeEl = btn.querySelector('[class*="sessionTime"]');
    return {{
      title: nameEl ? nameEl.textContent.trim() : (btn.textContent || '').trim(),
      time: timeEl ? timeEl.textContent.trim() : '',
      active: String(btn.className || '').includes('active')
    }};
  }});
  return {{ items }};
""",
        helpers=False,
    )


def open_conversation_script(title: str) -> str:
    return _iife(
        f"""
  const btn = document.querySelector({json.dumps(HISTORY_BUTTON_SELECTOR)});
  if (!btn) return {{ ok: false, error: 'no button' }};
  btn.click();
  await new Promise(r => setTimeout(r, 400));
  const wanted = {json.dumps(str(title))};
  const target = Array.from(document.querySelectorAll({json.dumps(SESSION_ITEM_SELECTOR)})).find(b => {{
    const nameEl = b.querySelector('[class*="sessionName"]');
    return (nameEl ? nameEl.textContent.trim() : (b.textContent || '').trim()).includes(wanted);
  }});
  if (!target) {{ btn.click(); return {{ ok: false, error: 'conversation not found' }}; }}
  target.click();
  return {{ ok: true }};
""",
        is_async=True,
        helpers=False,
    )


def diagnose_turns_script(root_selectors: list[str]) -> str:
    return _iife(
        f"""
  let root = null, rootSelector = null;
  for (const sel of {json.dumps(root_selectors)}) {{
    try {{
      const el = document.querySelector(sel);
      if (el) {{ root = el; rootSelector = sel; break; }}
    }} catch (e) {{ }}
  }}
  if (!root) {{ root = document.body || document.documentElement; rootSelector = 'body'; }}
  if (!root) return {{ error: 'root not found' }};
  const buttons = Array.from(root.querySelectorAll({json.dumps(MESSAGE_ACTIONS_SELECTOR)})).map((btn, index) => {{
    let parent = btn.parentElement, parentInfo = null;
    for (let depth = 0; depth < 10 && parent && parent !== root; depth++) {{
      const text = (parent.innerText || '').trim();
      if (text.length > 5 && parent.tagName === 'DIV') {{
        parentInfo = {{
          depth,
          tagName: parent.tagName,
          className: String(parent.className || '').trim().substring(0, 100),
          textPreview: text.substring(0, 80) + (text.length > 80 ? '...' : ''),
          textLength: text.length
        }};
        break;
      }}
      parent = parent.parentElement;
    }}
    return {{ index, ariaLabel: btn.getAttribute('aria-label'), title: btn.getAttribute('title'), parentInfo }};
  }});
  return {{ rootSelector, messageActionButtonCount: buttons.length, buttons, childCount: buttons.length }};
""",
        helpers=False,
    )


def button_inventory_script(limit: int = 200) -> str:
    return _iife(
        f"""
  return Array.from(document.querySelectorAll('button')).slice(0, {int(limit)}).map(b => ({{
    className: String(b.className || ''),
    title: b.title || '',
    ariaLabel: b.getAttribute('aria-label') || '',
    text: (b.textContent || '').trim().slice(0, 100)
  }}));
""",
        helpers=False,
    )


__all__ = [
    "THEME_VARIABLES",
    "button_inventory_script",
    "capture_script",
    "click_back_script",
    "click_by_text_script",
    "click_view_all_script",
    "css_script",
    "current_mode_script",
    "diagnose_turns_script",
    "inject_script",
    "list_conversations_script",
    "metadata_script",
    "open_conversation_script",
    "switch_mode_script",
    "toggle_history_script",
]
