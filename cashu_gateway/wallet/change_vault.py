# module cashu_gateway.wallet.change_vault
"""
Coffre local des tokens de monnaie (fichier JSON durable).
- Chaque token est écrit sur disque avant tout autre usage (jamais perdu)
- kind="change": renvoyé au serveur à chaque confirmation
- kind="recovery": preuves intermédiaires (swap vers le mint de confiance), retirées une fois dépensées
Écriture atomique: fichier temporaire puis os.replace.
"""
import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Union

CHANGE = "change"
RECOVERY = "recovery"


class ChangeVault:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, List[dict]]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, List[dict]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".vault-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def add(self, order_id: int, token: str, kind: str = CHANGE) -> bool:
        """Retourne False si le token était déjà présent."""
        with self._lock:
            data = self._read()
            entries = data.setdefault(str(order_id), [])
            if any(e.get("token") == token for e in entries):
                return False
            entries.append({"token": token, "kind": kind, "created_at": int(time.time())})
            self._write(data)
            return True

    def tokens(self, order_id: int, kind: str = CHANGE) -> List[str]:
        with self._lock:
            entries = self._read().get(str(order_id), [])
        return [e["token"] for e in entries if e.get("kind", CHANGE) == kind and e.get("token")]

    def remove(self, order_id: int, token: str) -> None:
        with self._lock:
            data = self._read()
            entries = data.get(str(order_id), [])
            kept = [e for e in entries if e.get("token") != token]
            if len(kept) != len(entries):
                data[str(order_id)] = kept
                self._write(data)
