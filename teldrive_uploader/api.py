"""Wire models and endpoint wrappers for the drive backend."""

from dataclasses import asdict, dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional

from .transport import RestClient

LIST_PAGE_SIZE = 500


@dataclass
class PartResult:
    part_id: int
    part_no: int
    size: int
    channel_id: Optional[int] = None
    id: str = ""
    name: str = ""
    total_parts: int = 0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PartResult":
        return cls(
            part_id=int(data["partId"]),
            part_no=int(data["partNo"]),
            size=int(data.get("size", 0)),
            channel_id=data.get("channelId"),
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            total_parts=int(data.get("totalParts", 0)),
        )


@dataclass
class Part:
    id: int
    partNo: int


@dataclass
class FilePayload:
    name: str
    mimeType: str
    path: str
    size: int
    parts: List[Part] = field(default_factory=list)
    type: str = "file"

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        if not data["parts"]:
            del data["parts"]
        return data


@dataclass
class FileInfo:
    id: str
    name: str
    type: str
    mime_type: str = ""
    size: int = 0
    parent_id: str = ""
    mod_time: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "FileInfo":
        return cls(
            id=str(data.get("id", "")),
            name=data["name"],
            type=data.get("type", ""),
            mime_type=data.get("mimeType", ""),
            size=int(data.get("size") or 0),
            parent_id=str(data.get("parentId") or ""),
            mod_time=data.get("updatedAt") or data.get("modTime") or "",
        )


def absolute(path: str) -> str:
    if not path.startswith("/"):
        return "/" + path
    return path


def session_path(fingerprint: str) -> str:
    return f"/api/uploads/{fingerprint}"


class DriveAPI:
    """One method per backend endpoint. Errors propagate as raised by the client."""

    def __init__(self, client: RestClient) -> None:
        self.client = client

    def make_dir(self, path: str) -> None:
        self.client.call_json("POST", "/api/files/makedir", request={"path": absolute(path)})

    def list_page(self, path: str, page_token: str = "") -> Dict[str, Any]:
        params = {
            "path": absolute(path),
            "perPage": LIST_PAGE_SIZE,
            "sort": "name",
            "order": "asc",
            "op": "list",
        }
        if page_token:
            params["nextPageToken"] = page_token
        _, data = self.client.call_json("GET", "/api/files", params=params)
        return data or {}

    def upload_part(
        self,
        fingerprint: str,
        reader: BinaryIO,
        length: int,
        file_name: str,
        part_no: int,
        total_parts: int,
        channel_id: Optional[int] = None,
    ):
        """POST one part. Returns ``(status_code, PartResult or None)``."""
        params = {
            "fileName": file_name,
            "partNo": part_no,
            "totalparts": total_parts,
        }
        if channel_id is not None:
            params["channelId"] = channel_id
        resp, data = self.client.call_json(
            "POST",
            session_path(fingerprint),
            params=params,
            body=reader,
            content_type="application/octet-stream",
            content_length=length,
        )
        if resp.status_code != 200 or not data:
            return resp.status_code, None
        return resp.status_code, PartResult.from_json(data)

    def create_file(self, payload: FilePayload) -> None:
        self.client.call_json("POST", "/api/files", request=payload.to_json())

    def delete_session(self, fingerprint: str) -> None:
        self.client.call("DELETE", session_path(fingerprint))
