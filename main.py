"""
Quasidiffusion solver - entry point.

Usage:
    uv run python main.py
    uv run python main.py solver.steady_state=false mesh.n_steps=10
    uv run python main.py solver.north=reflecting solver.linear_solver=direct
"""

import logging
import os
import sys
import tempfile
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

load_dotenv()
sys.path.insert(0, str(Path(__file__).parent / "src"))

log = logging.getLogger(__name__)


def get_experiment_name(cfg: DictConfig) -> str:
    """Build full experiment name with optional prefix."""
    name = cfg.experiment_name
    prefix = cfg.mlflow.get("project_prefix", "")
    if prefix and not name.startswith("/"):
        return f"{prefix}/{name}"
    return name


def setup_mlflow(cfg: DictConfig) -> str:
    """Setup MLflow tracking and return experiment name."""
    tracking_uri = cfg.mlflow.get("tracking_uri", "./mlruns")
    if str(cfg.mlflow.get("mode", "")).lower() in ("files", "local"):
        os.environ.pop("MLFLOW_TRACKING_URI", None)
    os.environ["MLFLOW_TRACKING_URI"] = str(tracking_uri)
    mlflow.set_tracking_uri(tracking_uri)

    experiment_name = get_experiment_name(cfg)
    try:
        mlflow.set_experiment(experiment_name)
    except Exception as exc:
        experiment_name = f"{experiment_name}-restored"
        log.warning(f"MLflow set_experiment failed ({exc}); using '{experiment_name}'")
        mlflow.set_experiment(experiment_name)

    return experiment_name


def build_solver(cfg: DictConfig):
    """Create mesh, group constants and solver from the config."""
    from meshing import RZMesh
    from quasidiffusion import BoundaryData, GroupConstants, MultiGroupQD

    mesh = RZMesh.uniform(
        radius=cfg.mesh.radius,
        height=cfg.mesh.height,
        n_r=cfg.mesh.n_r,
        n_z=cfg.mesh.n_z,
        dt=cfg.mesh.get("dt"),
        n_steps=cfg.mesh.get("n_steps", 0),
    )
    materials = GroupConstants.uniform(mesh.n_z, mesh.n_r, **OmegaConf.to_container(cfg.materials))
    params = instantiate(cfg.solver, _convert_="partial")

    solver = MultiGroupQD(mesh, materials, params=params)
    for g in range(solver.n_groups):
        solver.set_boundary_data(g, BoundaryData.default(mesh.n_z, mesh.n_r, flux_value=cfg.boundary_flux))
    return solver


def run_solver(cfg: DictConfig) -> str:
    """Run solver and log to MLflow. Returns run_id."""
    solver = build_solver(cfg)
    regime = "steady" if solver.params.steady_state else "transient"
    run_name = cfg.get("run_name") or f"qd_{regime}_G{solver.n_groups}_{cfg.mesh.n_r}x{cfg.mesh.n_z}"

    parent_run_id = os.environ.get("MLFLOW_PARENT_RUN_ID")
    tags = {"regime": regime}
    if parent_run_id:
        tags.update({"mlflow.parentRunId": parent_run_id, "parent_run_id": parent_run_id, "sweep": "child"})

    with mlflow.start_run(run_name=run_name, tags=tags, nested=bool(parent_run_id)) as run:
        mlflow.log_params(solver.params.to_mlflow())
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        log.info(f"Solving: {run_name}")
        solver.solve()

        mlflow.log_metrics(solver.metrics.to_mlflow())

        with tempfile.TemporaryDirectory() as tmpdir:
            fields_path = Path(tmpdir) / "fields.csv"
            solver.fields_dataframe().to_csv(fields_path, index=False)
            mlflow.log_artifact(str(fields_path))
            history_path = Path(tmpdir) / "time_series.csv"
            solver.time_series.to_dataframe().to_csv(history_path, index=False)
            mlflow.log_artifact(str(history_path))

        log.info(
            f"Done: {solver.metrics.solves} solves, {solver.metrics.fallbacks} fallbacks, "
            f"residual={solver.metrics.final_relative_residual:.3e}, time={solver.metrics.wall_time_seconds:.2f}s"
        )
        return run.info.run_id


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Main entry point."""
    log.info(f"Mesh: {cfg.mesh.n_r}x{cfg.mesh.n_z}, steady_state={cfg.solver.steady_state}")
    log.info(f"MLflow experiment: {setup_mlflow(cfg)}")
    run_solver(cfg)


if __name__ == "__main__":
    main()
