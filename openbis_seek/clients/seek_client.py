# openbis_seek/clients/seek_client.py
"""
SEEK 客户端（JSON:API，HTTP Basic认证）

负责关键字检索、节点创建与更新、样本类型查询与创建，以及资产内容的流式上传。
"""

import logging
from typing import Any, Callable, ContextManager, Dict, Iterable, List, Optional, Set

import requests

from openbis_seek.exceptions import TransportError
from openbis_seek.models.isa import (
    AssayWithQueuedAssets,
    AssetToUpload,
    GenericSeekAsset,
    ISASampleType,
    SeekStructure,
)
from openbis_seek.models.openbis import DataSetFile
from openbis_seek.utils.yaml_config import SyncSettings

logger = logging.getLogger(__name__)

JSON_API_TYPE = "application/vnd.api+json"

# 上传内容的提供者：调用后返回一个上下文管理器，进入时得到字节块迭代器
ContentSupplier = Callable[[], ContextManager[Iterable[bytes]]]


class SeekClient:
    """SEEK API客户端"""

    def __init__(self, settings: SyncSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.seek_url
        self.session = session or requests.Session()
        self.session.auth = (settings.seek_user, settings.seek_password)
        self.session.headers.update({"Content-Type": JSON_API_TYPE, "Accept": JSON_API_TYPE})

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.session.close()

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"
        kwargs.setdefault("timeout", self.settings.timeout_seconds)
        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            status = getattr(e.response, "status_code", None)
            detail = e.response.text if e.response is not None else str(e)
            raise TransportError(f"SEEK请求失败：{method} {url}，状态码：{status}，详情：{detail}",
                                 status_code=status, cause=e) from e

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """发送请求并返回JSON响应体"""
        response = self._send(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"SEEK响应不是有效的JSON：{method} {response.url}", cause=e) from e

    @staticmethod
    def _data(body: Dict[str, Any]) -> Any:
        if "data" not in body:
            raise TransportError(f"SEEK响应缺少data节点：{body!r}")
        return body["data"]

    def _created_id(self, body: Dict[str, Any]) -> str:
        data = self._data(body)
        if not isinstance(data, dict) or not data.get("id"):
            raise TransportError(f"SEEK创建响应缺少id：{body!r}")
        return str(data["id"])

    def endpoint(self, resource_type: str, resource_id: str) -> str:
        return f"{self.base_url}/{resource_type}/{resource_id}"

    # ---------- 查询 ----------

    def search_assays_containing_keyword(self, keyword: str) -> List[str]:
        """全文检索包含关键字的assay，返回assay id列表"""
        body = self._request("GET", "search.json", params={"q": keyword, "search_type": "assays"})
        return [str(item["id"]) for item in self._data(body) or []
                if item.get("type") == "assays" and item.get("id") is not None]

    def get_sample_type_names_to_ids(self) -> Dict[str, str]:
        body = self._request("GET", "sample_types.json")
        result: Dict[str, str] = {}
        for item in self._data(body) or []:
            title = (item.get("attributes") or {}).get("title")
            if title is None:
                # 列表接口可能只返回链接，需要逐个读取
                title = self._data(self._request("GET", f"sample_types/{item['id']}.json"))["attributes"]["title"]
            result[title] = str(item["id"])
        return result

    def sample_type_exists(self, code: str) -> bool:
        return code in self.get_sample_type_names_to_ids()

    def create_sample_type(self, sample_type: ISASampleType) -> str:
        sample_type_id = self._created_id(self._request("POST", "sample_types", json={"data": sample_type.to_json()}))
        logger.info(f"成功创建SEEK样本类型：{sample_type.title}（id: {sample_type_id}）")
        return sample_type_id

    # ---------- 创建 ----------

    def _create_asset(self, asset: GenericSeekAsset, file: DataSetFile, assay_id: str,
                      transfer_data: bool) -> Optional[AssetToUpload]:
        body = self._request("POST", asset.asset_type, json={"data": asset.to_json(assay_ids=[assay_id])})
        asset_id = self._created_id(body)
        logger.info(f"成功创建SEEK资产：{asset.title}（{asset.asset_type}/{asset_id}）")
        if not transfer_data:
            return None

        blobs = (self._data(body).get("attributes") or {}).get("content_blobs") or []
        blob_endpoint = blobs[0].get("link") if blobs and isinstance(blobs[0], dict) else None
        if not blob_endpoint:
            raise TransportError(f"SEEK资产 {asset.asset_type}/{asset_id} 的响应中没有content_blob链接")
        return AssetToUpload(blob_endpoint=blob_endpoint, file_path=file.path, dataset_code=file.dataset_perm_id)

    def create_node(self, structure: SeekStructure, transfer_data: bool) -> AssayWithQueuedAssets:
        """
        新建assay及其样本和资产

        顺序：样本 -> assay（关联样本）-> 资产（关联assay）

        Returns:
            AssayWithQueuedAssets：assay地址，以及transfer_data为True时需要上传内容的资产
        """
        sample_ids = []
        for reference, sample in structure.get_samples_with_openbis_reference().items():
            sample_id = self._created_id(self._request("POST", "samples", json={"data": sample.to_json()}))
            logger.info(f"成功创建SEEK样本：{reference}（id: {sample_id}）")
            sample_ids.append(sample_id)

        assay, reference = structure.get_assay_with_openbis_reference()
        assay_id = self._created_id(self._request("POST", "assays", json={"data": assay.to_json(sample_ids)}))
        logger.info(f"成功创建SEEK assay：{reference}（id: {assay_id}）")

        queued: List[AssetToUpload] = []
        for asset, file in structure.get_assets_with_files():
            to_upload = self._create_asset(asset, file, assay_id, transfer_data)
            if to_upload is not None:
                queued.append(to_upload)
        return AssayWithQueuedAssets(assay_endpoint=self.endpoint("assays", assay_id), assets=queued)

    # ---------- 更新 ----------

    def _existing_sample_ids_by_title(self, sample_ids: Iterable[str]) -> Dict[str, str]:
        """已关联样本：标题属性（openBIS样本标识）-> SEEK样本id"""
        result = {}
        for sample_id in sample_ids:
            attributes = self._data(self._request("GET", f"samples/{sample_id}.json")).get("attributes") or {}
            title = (attributes.get("attribute_map") or {}).get(self.settings.sample_title_attribute) \
                or attributes.get("title")
            if title:
                result[str(title)] = sample_id
        return result

    def _existing_asset_titles(self, relationships: Dict[str, Any], asset_types: Set[str]) -> Set[str]:
        titles = set()
        for asset_type in asset_types:
            for item in (relationships.get(asset_type) or {}).get("data") or []:
                attributes = self._data(self._request("GET", f"{asset_type}/{item['id']}.json")).get("attributes") or {}
                if attributes.get("title"):
                    titles.add(attributes["title"])
        return titles

    def update_node(self, structure: SeekStructure, assay_id: str, transfer_data: bool) -> AssayWithQueuedAssets:
        """
        更新已存在的assay

        - assay的标题、描述、类型按翻译结果更新
        - 样本按标题属性匹配：已存在的更新，其余新建；assay的样本列表替换为两者的并集
        - 资产按标题匹配：已存在的保留，其余新建并在transfer_data为True时排队上传

        Returns:
            AssayWithQueuedAssets：更新后的assay地址，以及新建且需要上传内容的资产
        """
        existing = self._data(self._request("GET", f"assays/{assay_id}.json"))
        relationships = existing.get("relationships") or {}
        linked_sample_ids = [str(item["id"]) for item in (relationships.get("samples") or {}).get("data") or []]
        samples_by_title = self._existing_sample_ids_by_title(linked_sample_ids)

        sample_ids = list(linked_sample_ids)
        for reference, sample in structure.get_samples_with_openbis_reference().items():
            payload = sample.to_json()
            if reference in samples_by_title:
                sample_id = samples_by_title[reference]
                payload["id"] = sample_id
                self._request("PATCH", f"samples/{sample_id}", json={"data": payload})
                logger.info(f"成功更新SEEK样本：{reference}（id: {sample_id}）")
            else:
                sample_id = self._created_id(self._request("POST", "samples", json={"data": payload}))
                logger.info(f"成功创建SEEK样本：{reference}（id: {sample_id}）")
            if sample_id not in sample_ids:
                sample_ids.append(sample_id)

        assay, reference = structure.get_assay_with_openbis_reference()
        payload = assay.to_json(sample_ids)
        payload["id"] = str(assay_id)
        self._request("PATCH", f"assays/{assay_id}", json={"data": payload})
        logger.info(f"成功更新SEEK assay：{reference}（id: {assay_id}）")

        assets_with_files = structure.get_assets_with_files()
        existing_titles = self._existing_asset_titles(relationships, {a.asset_type for a, _ in assets_with_files})
        queued: List[AssetToUpload] = []
        for asset, file in assets_with_files:
            if asset.title in existing_titles:
                logger.debug(f"SEEK资产已存在，跳过：{asset.title}")
                continue
            to_upload = self._create_asset(asset, file, str(assay_id), transfer_data)
            if to_upload is not None:
                queued.append(to_upload)
        return AssayWithQueuedAssets(assay_endpoint=self.endpoint("assays", assay_id), assets=queued)

    # ---------- 上传 ----------

    def upload_blob(self, blob_endpoint: str, content_supplier: ContentSupplier) -> str:
        """
        把字节流上传到资产的content blob（分块传输，不整体缓存）

        content_supplier在这里被调用并完整消费，返回前关闭源数据流

        Returns:
            资产在SEEK中的地址
        """
        with content_supplier() as chunks:
            self._send(
                "PUT",
                blob_endpoint,
                data=iter(chunks),
                headers={"Content-Type": "application/octet-stream", "Accept": "application/json"},
            )
        return blob_endpoint.split("/content_blobs/")[0]
