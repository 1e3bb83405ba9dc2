import json
import logging
from typing import Any
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup

from ..core import (
    HTTP_TIMEOUT,
    JENKINS_EXECUTORS,
    JENKINS_PORT,
    JENKINS_PRIVATE_KEY,
    JENKINS_REMOTE_FS,
    MASTER_NAMES,
)
from ..exceptions import ProtocolError
from ..logger import logger as default_logger
from ..schemas.ci import BuildQueue, WorkerNode, worker_name
from ..schemas.cloud import CloudInstance

QUEUE_SELECTOR = "#buildQueue .pane tr td a.model-link"


class JenkinsState:
    """
    Workers and build queue as seen by the Jenkins master, plus node
    registration. The worker list is cached until refresh_workers().
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        credentials_id: str,
        port: int = JENKINS_PORT,
        remote_fs: str = JENKINS_REMOTE_FS,
        private_key_file: str = JENKINS_PRIVATE_KEY,
        executors: int = JENKINS_EXECUTORS,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.credentials_id = credentials_id
        self.remote_fs = remote_fs
        self.private_key_file = private_key_file
        self.executors = executors
        self.timeout = timeout
        self.log = logger or default_logger

        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self._workers: list[WorkerNode] | None = None

    @property
    def endpoint(self) -> str:
        host = self.host.rstrip("/")
        if "://" not in host:
            host = f"http://{host}"
        return f"{host}:{self.port}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.endpoint}{path}"
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response

    def _crumb(self) -> dict[str, str]:
        """CSRF header for POSTs, empty when the master does not issue crumbs."""
        url = f"{self.endpoint}/crumbIssuer/api/json"
        response = self.session.get(url, timeout=self.timeout)
        if response.status_code == 404:
            return {}
        response.raise_for_status()
        data = response.json()
        return {data["crumbRequestField"]: data["crumb"]}

    def workers(self) -> list[WorkerNode]:
        """All workers except the master itself. Cached, see refresh_workers."""
        if self._workers is not None:
            return self._workers

        path = "/computer/api/json"
        response = self._request("GET", path)
        if not response.text.strip():
            raise ProtocolError(f"Empty response from endpoint: {self.endpoint}{path}")
        try:
            computers = json.loads(response.text)["computer"]
            workers = [
                WorkerNode.model_validate(c)
                for c in computers
                if c.get("displayName") not in MASTER_NAMES
            ]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ProtocolError(
                f"Failed to load data from {self.endpoint}{path}: {e}"
            ) from e

        self._workers = workers
        return self._workers

    def refresh_workers(self) -> list[WorkerNode]:
        self.log.info("Busting Jenkins worker cache.")
        self._workers = None
        return self.workers()

    def worker_by_ip(self, ip_address: str) -> WorkerNode | None:
        for w in self.workers():
            if w.ip == ip_address:
                return w
        return None

    def queue(self) -> BuildQueue:
        """Scrapes the queued job links off the master's front page."""
        response = self._request("GET", "/")
        soup = BeautifulSoup(response.text, "html.parser")
        links = [a.get("href", "") for a in soup.select(QUEUE_SELECTOR)]
        return BuildQueue(jobs=links)

    def node_config(self, name: str, ip: str) -> dict[str, Any]:
        """Form body for a permanent ("dumb") agent launched over SSH."""
        launcher = {
            "stapler-class": "hudson.plugins.sshslaves.SSHLauncher",
            "$class": "hudson.plugins.sshslaves.SSHLauncher",
            "host": ip,
            "port": "22",
            "credentialsId": self.credentials_id,
            "privatekey": self.private_key_file,
        }
        return {
            "name": name,
            "nodeDescription": "",
            "numExecutors": str(self.executors),
            "remoteFS": self.remote_fs,
            "labelString": "",
            "mode": "NORMAL",
            "type": "hudson.slaves.DumbSlave$DescriptorImpl",
            "retentionStrategy": {
                "stapler-class": "hudson.slaves.RetentionStrategy$Always"
            },
            "nodeProperties": {"stapler-class-bag": "true"},
            "launcher": launcher,
        }

    def register_worker(self, instance: CloudInstance) -> str:
        """Adds the instance to the master as "worker - <ip>". Returns the name."""
        if not instance.ip:
            raise ProtocolError(f"Instance has no private IP: {instance.id}")
        name = worker_name(instance.ip)
        self.log.info(f"Registering worker: {name}")
        self._request(
            "POST",
            "/computer/doCreateItem",
            headers=self._crumb(),
            data={
                "name": name,
                "type": "hudson.slaves.DumbSlave$DescriptorImpl",
                "json": json.dumps(self.node_config(name, instance.ip)),
            },
        )
        # Membership changed, the cached list is stale
        self._workers = None
        return name

    def deregister_worker(self, worker: WorkerNode) -> None:
        self.log.info(f"Deleting worker: {worker.name}")
        self._request(
            "POST",
            f"/computer/{quote(worker.name, safe='')}/doDelete",
            headers=self._crumb(),
        )
        self._workers = None
