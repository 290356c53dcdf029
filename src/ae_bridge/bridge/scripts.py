"""ExtendScript sources run inside the host: direct scripts and the consumer loop."""

from __future__ import annotations

import json

from ae_bridge.bridge.commands import Command, ImportAudio, RunScriptText
from ae_bridge.bridge.layout import BridgeLayout

AUDIO_FOLDER_NAME = "Audio"
IMPORT_UNDO_GROUP = "AE Bridge Add Audio"
SCRIPT_UNDO_GROUP = "AE Bridge Script Execution"


def js_string(value: str) -> str:
    """Quote a Python string as an ES3-safe JavaScript string literal."""

    return json.dumps(value, ensure_ascii=True)


def _fill(template: str, **values: str) -> str:
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace("{{" + key + "}}", value)
    return rendered


_HELPERS_JS = """\
function aeBridgeFindFolder(prj, name) {
  for (var i = 1; i <= prj.numItems; i++) {
    var it = prj.item(i);
    if (it instanceof FolderItem && it.name === name) { return it; }
  }
  return null;
}
function aeBridgeFindFootage(prj, path) {
  var target = new File(path).fsName;
  for (var i = 1; i <= prj.numItems; i++) {
    var it = prj.item(i);
    if (it instanceof FootageItem) {
      try { if (it.file && it.file.fsName === target) { return it; } } catch (e) {}
    }
  }
  return null;
}
function aeBridgeActiveComp(prj) {
  var comp = prj.activeItem;
  return (comp && comp instanceof CompItem) ? comp : null;
}
function aeBridgeImportAudio(path, requireComp) {
  var prj = app.project;
  if (!prj) { throw new Error("No project open"); }
  var comp = aeBridgeActiveComp(prj);
  if (requireComp && !comp) { throw new Error("No active composition"); }
  app.beginUndoGroup({{IMPORT_UNDO}});
  try {
    var folder = aeBridgeFindFolder(prj, {{AUDIO_FOLDER}});
    if (!folder) { folder = prj.items.addFolder({{AUDIO_FOLDER}}); }
    var footage = aeBridgeFindFootage(prj, path);
    if (!footage) { footage = prj.importFile(new ImportOptions(new File(path))); }
    if (!footage) { throw new Error("Import failed: " + path); }
    if (footage.parentFolder !== folder) { footage.parentFolder = folder; }
    if (comp) {
      var layer = comp.layers.add(footage);
      layer.startTime = comp.time;
    }
  } finally {
    app.endUndoGroup();
  }
}
"""


def _helpers() -> str:
    return _fill(
        _HELPERS_JS,
        IMPORT_UNDO=js_string(IMPORT_UNDO_GROUP),
        AUDIO_FOLDER=js_string(AUDIO_FOLDER_NAME),
    )


_DIRECT_IMPORT_JS = """\
// AE Bridge direct import
{{HELPERS}}
(function () {
  try {
    aeBridgeImportAudio({{PATH}}, {{REQUIRE_COMP}});
    return "ok";
  } catch (e) {
    return "error: " + e.toString();
  }
})();
"""


def render_direct_script(command: Command) -> str:
    """Throwaway script for direct invocation in the live session."""

    if isinstance(command, ImportAudio):
        return _fill(
            _DIRECT_IMPORT_JS,
            HELPERS=_helpers(),
            PATH=js_string(command.path),
            REQUIRE_COMP="true" if command.require_active_comp else "false",
        )
    if isinstance(command, RunScriptText):
        return command.code
    raise ValueError(f"{command.action} cannot be delivered directly")


def render_restart_script(command: ImportAudio) -> str:
    """One-shot script passed with ``-r`` when the host is launched fresh."""

    return _fill(
        _DIRECT_IMPORT_JS,
        HELPERS=_helpers(),
        PATH=js_string(command.path),
        REQUIRE_COMP="false",
    )


_CONSUMER_JS = """\
// AE Bridge consumer: drains at most one queued command per tick.
// Installed into Scripts/Startup; re-running it through automation runs one
// tick immediately and returns the tick outcome.
{{HELPERS}}
var AE_BRIDGE_QUEUE_DIR = {{QUEUE_DIR}};
var AE_BRIDGE_JOBS_DIR = {{JOBS_DIR}};
var AE_BRIDGE_STOP_FLAG = {{STOP_FLAG}};
var AE_BRIDGE_TTL_MS = {{TTL_MS}};
var AE_BRIDGE_TICK_MS = {{TICK_MS}};

function aeBridgeEnsureDir(path) {
  var f = new Folder(path);
  if (!f.exists) { f.create(); }
  return f;
}
function aeBridgeQuote(s) {
  var out = '"';
  s = String(s);
  for (var i = 0; i < s.length; i++) {
    var c = s.charAt(i);
    var code = s.charCodeAt(i);
    if (c === '"' || c === "\\\\") {
      out += "\\\\" + c;
    } else if (code < 32 || code > 126) {
      var hex = code.toString(16);
      while (hex.length < 4) { hex = "0" + hex; }
      out += "\\\\u" + hex;
    } else {
      out += c;
    }
  }
  return out + '"';
}
function aeBridgeRead(f) {
  f.encoding = "UTF-8";
  if (!f.open("r")) { throw new Error("Cannot open " + f.fsName); }
  try { return f.read(); } finally { f.close(); }
}
function aeBridgeWriteAtomic(path, text) {
  var tmp = new File(path + ".tmp");
  tmp.encoding = "UTF-8";
  if (!tmp.open("w")) { throw new Error("Cannot write " + tmp.fsName); }
  try { tmp.write(text); } finally { tmp.close(); }
  var target = new File(path);
  if (target.exists) { target.remove(); }
  if (!tmp.rename(target.name)) { throw new Error("Cannot rename " + tmp.fsName); }
}
function aeBridgeArtifact(path, requestId, operation, startedAt, ok, error) {
  if (!path) { return; }
  var text = "{" +
    '"requestId":' + aeBridgeQuote(requestId) +
    ',"operation":' + aeBridgeQuote(operation) +
    ',"elapsedMs":' + (new Date().getTime() - startedAt) +
    ',"ok":' + (ok ? "true" : "false") +
    (error ? ',"error":' + aeBridgeQuote(error) : "") + "}";
  aeBridgeWriteAtomic(path, text);
}
function aeBridgeHasSelection() {
  var prj = app.project;
  if (!prj) { return false; }
  var comp = aeBridgeActiveComp(prj);
  return !!(comp && comp.selectedLayers && comp.selectedLayers.length > 0);
}
function aeBridgeKind(f) {
  var name = f.name;
  if (/\\.tmp$/.test(name)) { return "tmp"; }
  if (/\\.cmd$/.test(name)) { return "cmd"; }
  if (/\\.jsx$/.test(name)) { return "jsx"; }
  if (/\\.done\\.json$/.test(name)) { return "artifact"; }
  if (/^rb_.*\\.json$/.test(name)) { return "job"; }
  return null;
}
function aeBridgeCollect(folder, allowed, out) {
  var files = folder.getFiles();
  if (!files) { return; }
  for (var i = 0; i < files.length; i++) {
    var f = files[i];
    if (!(f instanceof File)) { continue; }
    var kind = aeBridgeKind(f);
    if (kind && allowed[kind]) { out.push({ file: f, kind: kind }); }
  }
}
function aeBridgeRunJob(content, startedAt) {
  var job;
  try {
    job = eval("(" + content + ")");
  } catch (e) {
    job = null;
  }
  if (!job || typeof job.requestId !== "string" || typeof job.action !== "string") {
    throw { rejected: true, message: "Invalid job descriptor", job: job };
  }
  if (job.action === "import_audio") {
    aeBridgeImportAudio(job.path, job.requireActiveComp !== false);
  } else if (job.action === "run_jsx_text") {
    app.beginUndoGroup({{SCRIPT_UNDO}});
    try { eval(job.code); } finally { app.endUndoGroup(); }
  } else if (job.action === "run_jsx_file") {
    app.beginUndoGroup({{SCRIPT_UNDO}});
    try { $.evalFile(new File(job.path)); } finally { app.endUndoGroup(); }
  } else {
    throw { rejected: true, message: "Unknown action: " + job.action, job: job };
  }
  return job;
}

function aeBridgeTick() {
  try {
    if (new File(AE_BRIDGE_STOP_FLAG).exists) { return "stopped"; }
    if (aeBridgeHasSelection()) { return "busy"; }

    var entries = [];
    aeBridgeCollect(aeBridgeEnsureDir(AE_BRIDGE_QUEUE_DIR), { cmd: 1, jsx: 1, tmp: 1 }, entries);
    aeBridgeCollect(aeBridgeEnsureDir(AE_BRIDGE_JOBS_DIR), { job: 1, artifact: 1, tmp: 1 }, entries);
    if (entries.length === 0) { return "idle"; }

    var now = new Date().getTime();
    var live = [];
    for (var i = 0; i < entries.length; i++) {
      var entry = entries[i];
      var age = now - entry.file.modified.getTime();
      if (age > AE_BRIDGE_TTL_MS) {
        try { entry.file.remove(); } catch (e) {}
      } else if (entry.kind === "cmd" || entry.kind === "jsx" || entry.kind === "job") {
        live.push(entry);
      }
    }
    if (live.length === 0) { return "idle"; }
    live.sort(function (a, b) {
      var d = a.file.modified.getTime() - b.file.modified.getTime();
      if (d !== 0) { return d; }
      return a.file.name < b.file.name ? -1 : (a.file.name > b.file.name ? 1 : 0);
    });

    var item = live[0];
    var content;
    try {
      content = String(aeBridgeRead(item.file)).replace(/\\s+$/, "");
    } catch (e) {
      return "retry";
    }
    if (!content) { return "retry"; }
    if (!app.project) { return "retry"; }

    var startedAt = new Date().getTime();
    try {
      if (item.kind === "cmd") {
        aeBridgeImportAudio(content, false);
      } else if (item.kind === "jsx") {
        app.beginUndoGroup({{SCRIPT_UNDO}});
        try { eval(content); } finally { app.endUndoGroup(); }
      } else {
        var job = aeBridgeRunJob(content, startedAt);
        aeBridgeArtifact(job.artifactPath, job.requestId, job.action, startedAt, true, null);
      }
    } catch (e) {
      if (e && e.rejected) {
        var bad = e.job || {};
        try {
          aeBridgeArtifact(bad.artifactPath, String(bad.requestId || ""), String(bad.action || ""), startedAt, false, e.message);
        } catch (ignored) {}
        try { item.file.remove(); } catch (ignored) {}
        return "rejected";
      }
      return "retry";
    }
    try { item.file.remove(); } catch (e) {}
    return "processed";
  } catch (e) {
    return "retry";
  }
}

if (typeof $.global.aeBridgeTaskId === "undefined") {
  try { $.global.aeBridgeTaskId = app.scheduleTask("aeBridgeTick()", AE_BRIDGE_TICK_MS, true); } catch (e) {}
}
aeBridgeTick();
"""


def render_consumer_script(
    layout: BridgeLayout,
    *,
    ttl_seconds: int = 300,
    tick_interval_seconds: float = 5.0,
) -> str:
    """Startup script that arms the in-host consumer tick."""

    return _fill(
        _CONSUMER_JS,
        HELPERS=_helpers(),
        QUEUE_DIR=js_string(str(layout.queue_dir)),
        JOBS_DIR=js_string(str(layout.jobs_dir)),
        STOP_FLAG=js_string(str(layout.stop_flag)),
        TTL_MS=str(int(ttl_seconds * 1000)),
        TICK_MS=str(int(tick_interval_seconds * 1000)),
        SCRIPT_UNDO=js_string(SCRIPT_UNDO_GROUP),
    )


# Snippets backing AutomationHostSession: each returns a short string result.

SNIPPET_HAS_PROJECT = 'app.project ? "true" : "false";'

SNIPPET_HAS_SELECTION = """\
(function () {
  var prj = app.project;
  if (!prj) { return "false"; }
  var comp = prj.activeItem;
  if (!(comp && comp instanceof CompItem)) { return "false"; }
  return (comp.selectedLayers && comp.selectedLayers.length > 0) ? "true" : "false";
})();
"""


def snippet_find_folder(name: str) -> str:
    return _fill(
        '{{HELPERS}}(function () { var f = aeBridgeFindFolder(app.project, {{NAME}});'
        ' return f ? String(f.id) : ""; })();',
        HELPERS=_helpers(),
        NAME=js_string(name),
    )


def snippet_add_folder(name: str) -> str:
    return f"String(app.project.items.addFolder({js_string(name)}).id);"


def snippet_find_footage(path: str) -> str:
    return _fill(
        '{{HELPERS}}(function () { var f = aeBridgeFindFootage(app.project, {{PATH}});'
        ' return f ? String(f.id) : ""; })();',
        HELPERS=_helpers(),
        PATH=js_string(path),
    )


def snippet_import_footage(path: str) -> str:
    return (
        "(function () { var f = app.project.importFile("
        f"new ImportOptions(new File({js_string(path)})));"
        ' return f ? String(f.id) : ""; })();'
    )


def snippet_set_parent_folder(item_id: int, folder_id: int) -> str:
    return (
        f"app.project.itemByID({int(item_id)}).parentFolder = "
        f'app.project.itemByID({int(folder_id)}); "ok";'
    )


SNIPPET_ACTIVE_COMP = """\
(function () {
  var prj = app.project;
  var comp = prj ? prj.activeItem : null;
  return (comp && comp instanceof CompItem) ? String(comp.id) : "";
})();
"""


def snippet_add_layer(comp_id: int, item_id: int) -> str:
    return (
        f"(function () {{ var comp = app.project.itemByID({int(comp_id)});"
        f" var layer = comp.layers.add(app.project.itemByID({int(item_id)}));"
        ' layer.startTime = comp.time; return "ok"; })();'
    )


def snippet_begin_undo(name: str) -> str:
    return f'app.beginUndoGroup({js_string(name)}); "ok";'


SNIPPET_END_UNDO = 'app.endUndoGroup(); "ok";'
