from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from studytools.config.loader import load_config
from studytools.config.schema import AppConfig
from studytools.pipeline.ingestion import HoldingArea, IngestionGate
from studytools.pipeline.orchestrator import Orchestrator
from studytools.pipeline.registry import OperationSpec, build_registry
from studytools.pipeline.sweeper import ExpirySweeper
from studytools.pipeline.workspace import SessionWorkspace
from studytools.transforms.process_backend import ProcessBackend
from studytools.utils.storage_paths import get_datas_dir, get_sessions_dir, get_uploads_dir


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return load_config()


def _data_root(config: AppConfig) -> Path:
    return config.storage.root or get_datas_dir()


@lru_cache(maxsize=1)
def get_workspace() -> SessionWorkspace:
    config = get_config()
    return SessionWorkspace(
        base_dir=get_sessions_dir(_data_root(config)),
        ttl=timedelta(seconds=config.storage.expiry_seconds),
    )


@lru_cache(maxsize=1)
def get_holding_area() -> HoldingArea:
    return HoldingArea(base_dir=get_uploads_dir(_data_root(get_config())))


def get_gate(holding: HoldingArea = Depends(get_holding_area)) -> IngestionGate:
    return IngestionGate(holding=holding)


def get_orchestrator(
    workspace: SessionWorkspace = Depends(get_workspace),
    holding: HoldingArea = Depends(get_holding_area),
) -> Orchestrator:
    return Orchestrator(workspace=workspace, holding=holding)


@lru_cache(maxsize=1)
def get_registry() -> dict[tuple[str, str], OperationSpec]:
    config = get_config()
    return build_registry(config, ProcessBackend(config.backends))


def build_sweeper(config: AppConfig, workspace: SessionWorkspace, holding: HoldingArea) -> ExpirySweeper:
    storage = config.storage
    return ExpirySweeper(
        workspace=workspace,
        holding=holding,
        interval=timedelta(seconds=storage.sweep_interval_seconds),
        holding_max_age=timedelta(seconds=storage.holding_max_age_seconds),
        abandoned_after=timedelta(seconds=storage.abandoned_after_seconds),
        batch_size=storage.sweep_batch_size,
    )
