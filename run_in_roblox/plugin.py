"""Studio plugin artifact.

The artifact is a Roblox XML model (.rbxmx) that Studio loads from its
plugins folder on startup. Layout:

    Script "run_in_roblox"          (PLUGIN_SOURCE)
        IntValue "PORT"             relay port
        StringValue "SERVER_ID"     session token
        ModuleScript "Main"         the user's script

Keeping port, token and script in separate values means no escaping of
Lua source is ever needed and the artifact can be read back exactly.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

PLUGIN_NAME = "run_in_roblox"

PLUGIN_SOURCE = """\
local HttpService = game:GetService("HttpService")
local LogService = game:GetService("LogService")
local RunService = game:GetService("RunService")

if not RunService:IsEdit() then
	return
end

local PORT = script.PORT.Value
local SERVER_ID = script.SERVER_ID.Value
local BASE_URL = ("http://localhost:%d"):format(PORT)
local FLUSH_INTERVAL = 0.1

local LEVELS = {
	[Enum.MessageType.MessageOutput] = "Print",
	[Enum.MessageType.MessageInfo] = "Info",
	[Enum.MessageType.MessageWarning] = "Warning",
	[Enum.MessageType.MessageError] = "Error",
}

local function post(route, body)
	body = body or {}
	body.server_id = SERVER_ID
	HttpService:PostAsync(
		BASE_URL .. route,
		HttpService:JSONEncode(body),
		Enum.HttpContentType.ApplicationJson
	)
end

local queue = {}

local function push(level, body)
	table.insert(queue, { type = "Output", level = level, body = body })
end

local function flush()
	if #queue == 0 then
		return
	end
	local batch = queue
	queue = {}
	post("/messages", { messages = batch })
end

post("/start")

local running = true
local connection = LogService.MessageOut:Connect(function(body, messageType)
	push(LEVELS[messageType] or "Print", body)
end)

-- Sole poster after /start: batches and /stop leave in order
task.spawn(function()
	while running do
		task.wait(FLUSH_INTERVAL)
		local sent, reason = pcall(flush)
		if not sent then
			warn("run_in_roblox: output batch lost: " .. tostring(reason))
		end
	end
	pcall(flush)
	post("/stop")
end)

local ok, err = pcall(require, script.Main)
if not ok then
	push("Error", tostring(err))
end

-- MessageOut is deferred; let pending output land before detaching
task.wait()
running = false
connection:Disconnect()
"""


class PluginFormatError(ValueError):
    """File is not a run_in_roblox plugin artifact."""

    pass


def plugin_file_name(port: int) -> str:
    """Artifact name; embeds the port so concurrent sessions never collide."""
    return f"{PLUGIN_NAME}-{port}.rbxmx"


def _item(parent: ET.Element, class_name: str, referent: int) -> ET.Element:
    item = ET.SubElement(parent, "Item", {"class": class_name, "referent": f"RBX{referent}"})
    ET.SubElement(item, "Properties")
    return item


def _prop(item: ET.Element, tag: str, name: str, value: str) -> None:
    el = ET.SubElement(item.find("Properties"), tag, {"name": name})
    el.text = value


def _get_prop(item: ET.Element, name: str) -> Optional[str]:
    props = item.find("Properties")
    if props is None:
        return None
    for el in props:
        if el.get("name") == name:
            return el.text or ""
    return None


@dataclass
class RunInRbxPlugin:
    """Everything the Studio side needs for one session."""

    port: int
    server_id: str
    lua_script: str

    def to_xml(self) -> ET.ElementTree:
        root = ET.Element("roblox", {"version": "4"})

        script = _item(root, "Script", 0)
        _prop(script, "string", "Name", PLUGIN_NAME)
        _prop(script, "ProtectedString", "Source", PLUGIN_SOURCE)

        port = _item(script, "IntValue", 1)
        _prop(port, "string", "Name", "PORT")
        _prop(port, "int64", "Value", str(self.port))

        server_id = _item(script, "StringValue", 2)
        _prop(server_id, "string", "Name", "SERVER_ID")
        _prop(server_id, "string", "Value", self.server_id)

        main = _item(script, "ModuleScript", 3)
        _prop(main, "string", "Name", "Main")
        # XML parsers normalize CRLF, so store LF only
        _prop(main, "ProtectedString", "Source", self.lua_script.replace("\r\n", "\n"))

        return ET.ElementTree(root)

    def write(self, file: BinaryIO) -> None:
        """Serialize the artifact to a binary file object."""
        self.to_xml().write(file, encoding="utf-8", xml_declaration=False)

    @classmethod
    def read(cls, file: BinaryIO) -> "RunInRbxPlugin":
        """Parse an artifact written by write().

        Raises:
            PluginFormatError: If the file is not a plugin artifact
        """
        try:
            root = ET.parse(file).getroot()
        except ET.ParseError as e:
            raise PluginFormatError(f"Not an XML model: {e}") from e

        script = root.find("Item")
        if root.tag != "roblox" or script is None or _get_prop(script, "Name") != PLUGIN_NAME:
            raise PluginFormatError("Not a run_in_roblox plugin")

        values = {}
        for child in script.findall("Item"):
            values[_get_prop(child, "Name")] = child

        try:
            port = int(_get_prop(values["PORT"], "Value"))
            server_id = _get_prop(values["SERVER_ID"], "Value")
            lua_script = _get_prop(values["Main"], "Source")
        except (KeyError, TypeError, ValueError) as e:
            raise PluginFormatError(f"Plugin is missing session values: {e}") from e

        if server_id is None or lua_script is None:
            raise PluginFormatError("Plugin is missing session values")

        return cls(port=port, server_id=server_id, lua_script=lua_script)


def read_plugin(path: Path) -> RunInRbxPlugin:
    with open(path, "rb") as f:
        return RunInRbxPlugin.read(f)
