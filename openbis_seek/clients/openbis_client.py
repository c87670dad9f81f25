# openbis_seek/clients/openbis_client.py
"""
openBIS 只读客户端（V3 JSON-RPC API）

- 应用服务器(AS)：检索空间、实验、样本、数据集、样本类型
- 数据存储服务器(DSS)：列出数据集文件，按数据集编码+路径流式下载文件内容

所有网络错误、JSON-RPC错误和响应格式错误都包装为TransportError抛出。
"""

import logging
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

import requests

from openbis_seek.exceptions import ObjectNotFoundError, TransportError
from openbis_seek.models.openbis import (
    DataSetFile,
    OpenbisDataset,
    OpenbisExperiment,
    OpenbisExperimentWithDescendants,
    OpenbisSample,
    SampleType,
)
from openbis_seek.utils.yaml_config import SyncSettings

logger = logging.getLogger(__name__)

AS_SERVICE_PATH = "/openbis/openbis/rmi-application-server-v3.json"
DSS_SERVICE_PATH = "/datastore_server/rmi-data-store-server-v3.json"

# Jackson序列化时，重复出现的对象只写一次（带@id），之后以整数引用；
# 这些字段的整数值需要替换回对象
JACKSON_REFERENCE_KEYS = {
    "type", "space", "project", "experiment", "sample", "samples", "children", "parents",
    "dataSets", "registrator", "modifier", "propertyType", "propertyAssignments",
    "entityType", "vocabulary", "dataSetPermId", "permId", "identifier", "tags",
}


def resolve_jackson_references(data: Any) -> Any:
    """把Jackson的@id整数引用替换为对应的对象（原地修改并返回）"""
    found: Dict[int, Dict[str, Any]] = {}

    def build_cache(node: Any) -> None:
        if isinstance(node, dict):
            if "@id" in node:
                found[node["@id"]] = node
            for value in node.values():
                build_cache(value)
        elif isinstance(node, list):
            for item in node:
                build_cache(item)

    visited = set()

    def deref(node: Any) -> None:
        if isinstance(node, (dict, list)):
            if id(node) in visited:
                return
            visited.add(id(node))
        if isinstance(node, dict):
            for key, value in list(node.items()):
                if key in JACKSON_REFERENCE_KEYS:
                    if isinstance(value, int) and not isinstance(value, bool) and value in found:
                        node[key] = found[value]
                    elif isinstance(value, list):
                        node[key] = [found.get(v, v) if isinstance(v, int) else v for v in value]
                deref(node[key])
        elif isinstance(node, list):
            for item in node:
                deref(item)

    build_cache(data)
    # 引用可能出现在对象首次定义之前，先建缓存再替换
    deref(data)
    return data


def fetch_options(type_name: str, **children: Dict[str, Any]) -> Dict[str, Any]:
    """构造fetchOptions节点，如 fetch_options("experiment.fetchoptions.ExperimentFetchOptions", type=...)"""
    options: Dict[str, Any] = {"@type": f"as.dto.{type_name}"}
    options.update(children)
    return options


def code_criteria(code: str) -> Dict[str, Any]:
    return {
        "@type": "as.dto.common.search.CodeSearchCriteria",
        "fieldValue": {"@type": "as.dto.common.search.StringEqualToValue", "value": code},
    }


def relation_criteria(type_name: str, *criteria: Dict[str, Any], operator: str = "AND") -> Dict[str, Any]:
    return {"@type": f"as.dto.{type_name}", "operator": operator, "criteria": list(criteria)}


def _space_criteria(space: str) -> Dict[str, Any]:
    return relation_criteria("space.search.SpaceSearchCriteria", code_criteria(space.upper()))


def entity_id(kind: str, value: str) -> Dict[str, Any]:
    """openBIS对象id：含'/'视为identifier，否则视为permId"""
    if "/" in value:
        return {"@type": f"as.dto.{kind.lower()}.id.{kind}Identifier", "identifier": value}
    return {"@type": f"as.dto.{kind.lower()}.id.{kind}PermId", "permId": value}


def _sample_type_fetch() -> Dict[str, Any]:
    return fetch_options(
        "sample.fetchoptions.SampleTypeFetchOptions",
        propertyAssignments=fetch_options(
            "property.fetchoptions.PropertyAssignmentFetchOptions",
            propertyType=fetch_options("property.fetchoptions.PropertyTypeFetchOptions"),
        ),
    )


def _sample_fetch(with_children: bool = False) -> Dict[str, Any]:
    options = fetch_options(
        "sample.fetchoptions.SampleFetchOptions",
        type=_sample_type_fetch(),
        properties=fetch_options("property.fetchoptions.PropertyFetchOptions"),
        space=fetch_options("space.fetchoptions.SpaceFetchOptions"),
    )
    if with_children:
        options["children"] = fetch_options(
            "sample.fetchoptions.SampleFetchOptions",
            type=fetch_options("sample.fetchoptions.SampleTypeFetchOptions"),
        )
    return options


def _dataset_fetch() -> Dict[str, Any]:
    return fetch_options(
        "dataset.fetchoptions.DataSetFetchOptions",
        type=fetch_options("dataset.fetchoptions.DataSetTypeFetchOptions"),
        registrator=fetch_options("person.fetchoptions.PersonFetchOptions"),
        experiment=fetch_options(
            "experiment.fetchoptions.ExperimentFetchOptions",
            project=fetch_options(
                "project.fetchoptions.ProjectFetchOptions",
                space=fetch_options("space.fetchoptions.SpaceFetchOptions"),
            ),
        ),
    )


def _experiment_fetch(with_descendants: bool = False) -> Dict[str, Any]:
    options = fetch_options(
        "experiment.fetchoptions.ExperimentFetchOptions",
        type=fetch_options("experiment.fetchoptions.ExperimentTypeFetchOptions"),
        project=fetch_options(
            "project.fetchoptions.ProjectFetchOptions",
            space=fetch_options("space.fetchoptions.SpaceFetchOptions"),
        ),
    )
    if with_descendants:
        options["samples"] = _sample_fetch()
        options["dataSets"] = _dataset_fetch()
    return options


class OpenbisClient:
    """openBIS V3 API客户端"""

    def __init__(self, settings: SyncSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.as_endpoint = f"{settings.openbis_as_url}{AS_SERVICE_PATH}"
        self.dss_endpoint = f"{settings.openbis_dss_url}{DSS_SERVICE_PATH}"
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    def __enter__(self):
        self.login()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.logout()
            return
        # 已有异常时登出失败只记录，保留原始异常
        try:
            self.logout()
        except TransportError as e:
            logger.warning(f"openBIS登出失败：{str(e)}")

    def _call(self, endpoint: str, method: str, *params: Any) -> Any:
        """发送一次JSON-RPC请求并返回result（已解析Jackson引用）"""
        payload = {"id": str(uuid.uuid4()), "jsonrpc": "2.0", "method": method, "params": list(params)}
        logger.debug(f"openBIS请求: {method}")
        try:
            response = self.session.post(endpoint, json=payload, timeout=self.settings.timeout_seconds)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise TransportError(
                f"openBIS请求失败（{method}）：{str(e)}",
                status_code=getattr(e.response, "status_code", None),
                cause=e,
            ) from e
        except ValueError as e:
            raise TransportError(f"openBIS响应不是有效的JSON（{method}）", cause=e) from e

        if not isinstance(body, dict):
            raise TransportError(f"openBIS响应格式错误（{method}）：{body!r}")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise TransportError(f"openBIS返回错误（{method}）：{message}")
        return resolve_jackson_references(body.get("result"))

    def _as(self, method: str, *params: Any) -> Any:
        return self._call(self.as_endpoint, method, self._require_token(), *params)

    def _dss(self, method: str, *params: Any) -> Any:
        return self._call(self.dss_endpoint, method, self._require_token(), *params)

    def _require_token(self) -> str:
        if not self.token:
            raise TransportError("尚未登录openBIS，请先调用login()")
        return self.token

    @staticmethod
    def _objects(result: Any) -> List[Dict[str, Any]]:
        """取出SearchResult中的objects列表"""
        if not isinstance(result, dict) or not isinstance(result.get("objects"), list):
            raise TransportError(f"openBIS检索结果格式错误：{result!r}")
        return [obj for obj in result["objects"] if isinstance(obj, dict)]

    # ---------- 会话 ----------

    def login(self) -> str:
        token = self._call(self.as_endpoint, "login", self.settings.openbis_user, self.settings.openbis_password)
        if not token:
            raise TransportError(f"openBIS登录失败，请检查用户 {self.settings.openbis_user} 的账号密码")
        self.token = token
        logger.info(f"成功登录openBIS：{self.settings.openbis_as_url}")
        return token

    def logout(self) -> None:
        if not self.token:
            return
        try:
            self._call(self.as_endpoint, "logout", self.token)
        finally:
            self.token = None
            self.session.close()

    # ---------- 查询 ----------

    def list_spaces(self) -> List[str]:
        result = self._as(
            "searchSpaces",
            relation_criteria("space.search.SpaceSearchCriteria"),
            fetch_options("space.fetchoptions.SpaceFetchOptions"),
        )
        return [space.get("code", "") for space in self._objects(result)]

    def experiment_exists(self, experiment_id: str) -> bool:
        result = self._as("getExperiments", [entity_id("Experiment", experiment_id)],
                          fetch_options("experiment.fetchoptions.ExperimentFetchOptions"))
        return bool(result)

    def sample_exists(self, sample_id: str) -> bool:
        result = self._as("getSamples", [entity_id("Sample", sample_id)],
                          fetch_options("sample.fetchoptions.SampleFetchOptions"))
        return bool(result)

    def find_datasets(self, codes: List[str]) -> List[OpenbisDataset]:
        if not codes:
            return []
        ids = [{"@type": "as.dto.dataset.id.DataSetPermId", "permId": code} for code in codes]
        result = self._as("getDataSets", ids, _dataset_fetch()) or {}
        return [OpenbisDataset.from_json(d) for d in result.values() if isinstance(d, dict)]

    def experiment_with_descendants(self, experiment_id: str) -> OpenbisExperimentWithDescendants:
        """
        获取实验及其全部样本、数据集和数据集文件

        Raises:
            ObjectNotFoundError: 实验不存在
        """
        result = self._as("getExperiments", [entity_id("Experiment", experiment_id)],
                          _experiment_fetch(with_descendants=True)) or {}
        experiments = [e for e in result.values() if isinstance(e, dict)]
        if not experiments:
            raise ObjectNotFoundError(experiment_id)
        data = experiments[0]

        samples = [OpenbisSample.from_json(s) for s in data.get("samples") or [] if isinstance(s, dict)]
        datasets = [OpenbisDataset.from_json(d) for d in data.get("dataSets") or [] if isinstance(d, dict)]

        files_by_dataset: Dict[str, List[DataSetFile]] = defaultdict(list)
        for file in self.get_dataset_files([d.code for d in datasets]):
            files_by_dataset[file.dataset_perm_id].append(file)

        experiment = OpenbisExperiment.from_json(data)
        logger.info(f"获取实验 {experiment.identifier}：样本 {len(samples)} 个，数据集 {len(datasets)} 个")
        return OpenbisExperimentWithDescendants(
            experiment=experiment,
            samples=samples,
            datasets=datasets,
            files_by_dataset=dict(files_by_dataset),
        )

    def get_dataset_files(self, dataset_codes: List[str]) -> List[DataSetFile]:
        """通过DSS列出数据集中的文件"""
        if not dataset_codes:
            return []
        criteria = {
            "@type": "dss.dto.datasetfile.search.DataSetFileSearchCriteria",
            "operator": "AND",
            "criteria": [{
                "@type": "as.dto.dataset.search.DataSetSearchCriteria",
                "relation": "DATASET",
                "operator": "OR",
                "criteria": [{
                    "@type": "as.dto.common.search.PermIdSearchCriteria",
                    "fieldValue": {"@type": "as.dto.common.search.StringEqualToValue", "value": code},
                } for code in dataset_codes],
            }],
        }
        result = self._dss("searchFiles", criteria,
                           {"@type": "dss.dto.datasetfile.fetchoptions.DataSetFileFetchOptions"})
        return [DataSetFile.from_json(f) for f in self._objects(result)]

    @contextmanager
    def stream_file(self, dataset_code: str, file_path: str) -> Iterator[Iterator[bytes]]:
        """
        流式读取数据集中一个文件的内容

        用法：
            with client.stream_file(code, path) as chunks:
                for chunk in chunks: ...

        退出上下文时关闭HTTP响应；不在本地落盘
        """
        url = f"{self.settings.openbis_dss_url}/datastore_server/{quote(dataset_code)}/{quote(file_path.lstrip('/'))}"
        try:
            response = self.session.get(
                url,
                params={"sessionID": self._require_token()},
                stream=True,
                timeout=self.settings.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(
                f"下载openBIS文件失败：{dataset_code}/{file_path}，错误：{str(e)}",
                status_code=getattr(e.response, "status_code", None),
                cause=e,
            ) from e

        try:
            yield self._iter_chunks(response, dataset_code, file_path)
        finally:
            response.close()

    def _iter_chunks(self, response: requests.Response, dataset_code: str, file_path: str) -> Iterator[bytes]:
        try:
            for chunk in response.iter_content(chunk_size=self.settings.chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise TransportError(f"读取openBIS文件中断：{dataset_code}/{file_path}，错误：{str(e)}", cause=e) from e

    def get_sample_types(self) -> List[SampleType]:
        result = self._as("searchSampleTypes",
                          relation_criteria("sample.search.SampleTypeSearchCriteria"),
                          _sample_type_fetch())
        return [SampleType.from_json(t) for t in self._objects(result)]

    def get_experiments_by_space(self, spaces: List[str]) -> Dict[str, List[OpenbisExperiment]]:
        experiments: Dict[str, List[OpenbisExperiment]] = {}
        for space in spaces:
            criteria = relation_criteria(
                "experiment.search.ExperimentSearchCriteria",
                relation_criteria("project.search.ProjectSearchCriteria", _space_criteria(space)),
            )
            result = self._as("searchExperiments", criteria, _experiment_fetch())
            experiments[space] = [OpenbisExperiment.from_json(e) for e in self._objects(result)]
        return experiments

    def get_samples_by_space(self, spaces: List[str]) -> Dict[str, List[OpenbisSample]]:
        samples: Dict[str, List[OpenbisSample]] = {}
        for space in spaces:
            criteria = relation_criteria("sample.search.SampleSearchCriteria", _space_criteria(space))
            result = self._as("searchSamples", criteria, _sample_fetch())
            samples[space] = [OpenbisSample.from_json(s) for s in self._objects(result)]
        return samples

    def _search_datasets(self, owner_criteria: Dict[str, Any], spaces: List[str]) -> List[OpenbisDataset]:
        result = self._as("searchDataSets",
                          relation_criteria("dataset.search.DataSetSearchCriteria", owner_criteria),
                          _dataset_fetch())
        datasets = [OpenbisDataset.from_json(d) for d in self._objects(result)]
        if spaces:
            wanted = {space.upper() for space in spaces}
            datasets = [d for d in datasets if d.space.upper() in wanted]
        return sorted(datasets, key=lambda d: d.space)

    def list_datasets_of_experiment(self, spaces: List[str], experiment_code: str) -> List[OpenbisDataset]:
        return self._search_datasets(
            relation_criteria("experiment.search.ExperimentSearchCriteria", code_criteria(experiment_code)),
            spaces,
        )

    def list_datasets_of_sample(self, spaces: List[str], sample_code: str) -> List[OpenbisDataset]:
        return self._search_datasets(
            relation_criteria("sample.search.SampleSearchCriteria", code_criteria(sample_code)),
            spaces,
        )

    def query_full_sample_hierarchy(self, spaces: List[str]) -> Dict[Tuple[str, Optional[str]], int]:
        """
        统计样本类型之间的父子关系出现次数

        Returns:
            (父类型, 子类型) -> 次数；没有子样本的样本记为 (类型, None)
        """
        hierarchy: Counter = Counter()
        for space in spaces or self.list_spaces():
            criteria = relation_criteria("sample.search.SampleSearchCriteria", _space_criteria(space))
            result = self._as("searchSamples", criteria, _sample_fetch(with_children=True))
            for sample in (OpenbisSample.from_json(s) for s in self._objects(result)):
                if not sample.children:
                    hierarchy[(sample.sample_type.code, None)] += 1
                for child in sample.children:
                    hierarchy[(sample.sample_type.code, child.sample_type.code)] += 1
        return dict(hierarchy)
