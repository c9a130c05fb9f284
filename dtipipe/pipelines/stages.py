"""The six pipeline stages.

Each stage is declared with its error contract and, for advisory stages,
the fallback its dependants use:

====================== ========= ===========================================
token                  contract  fallback when it fails
====================== ========= ===========================================
distortion_correction  advisory  eddy runs without a susceptibility field
basic_preprocessing    fatal     none, the subject stops
motion_correction      fatal     none, the subject stops
refinement             advisory  later stages use the unrefined eddy output
connectivity           advisory  the connectome is simply absent
microstructure         advisory  the metric maps are simply absent
====================== ========= ===========================================

Work functions write into ``<work_root>/<sub>/<token>/`` and migrate their
``out`` folder into a durable tier before returning; the checkpoint is only
recorded afterwards, so a completed stage always has durable outputs.
Later stages read their inputs from the durable tiers.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import structlog

from dtipipe.config.schema import AcquisitionConfig, PipelineConfig
from dtipipe.config.tools import ToolPaths
from dtipipe.registration.selector import (
    RegistrationOutcome,
    RegistrationSelector,
    load_outcome,
)
from dtipipe.registration.methods import RegistrationMethod
from dtipipe.registration.quality import QualityClass
from dtipipe.tools import fsl, mrtrix
from dtipipe.tools.base import ToolRunner
from dtipipe.tools.freesurfer import RECON_CRITICAL, ReconAllTool
from dtipipe.tools.noddi import NODDI_MAPS, NoddiTool
from dtipipe.tools.synb0 import Synb0Config, Synb0Tool
from dtipipe.utils.cleanup import delete_files
from dtipipe.utils.errors import MigrationError, PreconditionError, ToolError
from dtipipe.utils.storage import StorageMigrator

from .discovery import InputSummary, read_bvals, shells_from_bvals, validate_inputs
from .types import StageContract, StageSpec, Subject

log = structlog.get_logger()

TENSOR_METRICS = ("FA", "MD", "AD", "RD")


# --------------------------------------------------------------------------- #
# Derived-output layout                                                       #
# --------------------------------------------------------------------------- #
class Layout:
    """Durable output locations of one subject."""

    def __init__(self, subject: Subject) -> None:
        self.sid = subject.id
        self.fast = subject.paths.fast
        self.large = subject.paths.large

    # distortion correction
    @property
    def topup_dir(self) -> Path:
        return self.fast / "topup"

    @property
    def topup_prefix(self) -> Path:
        return self.topup_dir / f"{self.sid}_topup"

    @property
    def topup_fieldcoef(self) -> Path:
        return self.topup_dir / f"{self.sid}_topup_fieldcoef.nii.gz"

    @property
    def topup_acqparams(self) -> Path:
        return self.topup_dir / "acqparams.txt"

    # basic preprocessing
    @property
    def preproc_dir(self) -> Path:
        return self.fast / "preproc"

    @property
    def dwi_preproc(self) -> Path:
        return self.preproc_dir / f"{self.sid}_dwi_preproc.nii.gz"

    @property
    def b0_mean(self) -> Path:
        return self.preproc_dir / f"{self.sid}_b0_mean.nii.gz"

    @property
    def brain_mask(self) -> Path:
        return self.preproc_dir / f"{self.sid}_brain_mask.nii.gz"

    # motion correction
    @property
    def eddy_dir(self) -> Path:
        return self.fast / "eddy"

    @property
    def eddy_dwi(self) -> Path:
        return self.eddy_dir / f"{self.sid}_dwi_eddy.nii.gz"

    @property
    def eddy_bvec(self) -> Path:
        return self.eddy_dir / f"{self.sid}_dwi_eddy.bvec"

    @property
    def eddy_bval(self) -> Path:
        return self.eddy_dir / f"{self.sid}_dwi_eddy.bval"

    # refinement
    @property
    def refine_dir(self) -> Path:
        return self.fast / "refine"

    @property
    def dwi_biascorr(self) -> Path:
        return self.refine_dir / f"{self.sid}_dwi_biascorr.nii.gz"

    @property
    def t1w_in_dwi(self) -> Path:
        return self.refine_dir / f"{self.sid}_T1w_space-dwi.nii.gz"

    @property
    def registration_record(self) -> Path:
        return self.refine_dir / "registration.json"

    # connectivity
    @property
    def freesurfer_root(self) -> Path:
        return self.large / "freesurfer"

    @property
    def freesurfer_subject(self) -> Path:
        return self.freesurfer_root / self.sid

    @property
    def tracks_dir(self) -> Path:
        return self.large / "tracks"

    @property
    def tracks(self) -> Path:
        return self.tracks_dir / f"{self.sid}_tracks.tck"

    @property
    def connectome_dir(self) -> Path:
        return self.fast / "connectome"

    @property
    def connectome(self) -> Path:
        return self.connectome_dir / f"{self.sid}_connectome.csv"

    # microstructure
    @property
    def mrtrix_dir(self) -> Path:
        return self.fast / "mrtrix3"

    def metric_map(self, metric: str) -> Path:
        return self.mrtrix_dir / f"{self.sid}_{metric}.nii.gz"

    @property
    def noddi_dir(self) -> Path:
        return self.fast / "noddi"

    def noddi_map(self, name: str) -> Path:
        return self.noddi_dir / f"{self.sid}_{name}.nii.gz"

    # ------------------------------------------------------------------ #
    def current_dwi(self) -> Tuple[Path, Path, Path]:
        """Return ``(dwi, bvec, bval)``: refined when available, else eddy."""
        dwi = self.dwi_biascorr if self.dwi_biascorr.is_file() else self.eddy_dwi
        return dwi, self.eddy_bvec, self.eddy_bval


# --------------------------------------------------------------------------- #
# Shared context                                                              #
# --------------------------------------------------------------------------- #
@dataclass
class StageContext:
    """Everything a stage needs, passed explicitly.

    Attributes:
        cfg: Immutable pipeline configuration.
        tools: Resolved executables.
        runner: Tool runner.
        migrator: Verified tier transfers.
        selector: Registration selector.
        threads: Thread hint for external tools.
    """

    cfg: PipelineConfig
    tools: ToolPaths
    runner: ToolRunner
    migrator: StorageMigrator
    selector: RegistrationSelector
    threads: int = 1
    _inputs: Dict[str, InputSummary] = field(default_factory=dict)

    def exe(self, name: str) -> str:
        """Return the executable for *name* or raise :class:`ToolError`."""
        if not self.tools.has(name):
            raise ToolError(name, "executable not available")
        return self.tools.get(name)

    def inputs(self, subject: Subject) -> InputSummary:
        """Validate (once) and return the raw-input summary of *subject*."""
        if subject.id not in self._inputs:
            self._inputs[subject.id] = validate_inputs(
                subject, pe_axis=self.cfg.acquisition.pe_axis
            )
        return self._inputs[subject.id]

    def scratch(self, subject: Subject, token: str) -> Tuple[Path, Path]:
        """Return fresh ``(tmp, out)`` folders for *token*."""
        base = subject.paths.work / token
        if base.exists():
            shutil.rmtree(base)
        tmp, out = base / "tmp", base / "out"
        tmp.mkdir(parents=True)
        out.mkdir(parents=True)
        return tmp, out

    def migrate(self, source: Path, dest: Path, what: str, critical: Sequence[str | Path]) -> None:
        """Migrate or raise :class:`MigrationError`."""
        if not self.migrator.migrate(source, dest, what, critical=critical):
            raise MigrationError(f"could not migrate {what} to {dest}")

    def lookup_tables(self) -> Tuple[Path, Path]:
        """Return the FreeSurfer colour LUT and the connectome node LUT."""
        fs_lut = self.cfg.tools.freesurfer_lut
        if fs_lut is None and os.environ.get("FREESURFER_HOME"):
            fs_lut = Path(os.environ["FREESURFER_HOME"]) / "FreeSurferColorLUT.txt"
        nodes_lut = self.cfg.tools.connectome_lut
        if nodes_lut is None and self.tools.has("labelconvert"):
            share = Path(self.tools.get("labelconvert")).resolve().parents[1] / "share"
            nodes_lut = share / "mrtrix3" / "labelconvert" / "fs_default.txt"
        for name, p in (("FreeSurfer colour LUT", fs_lut), ("connectome node LUT", nodes_lut)):
            if p is None or not Path(p).is_file():
                raise PreconditionError(f"{name} not found ({p})")
        return Path(fs_lut), Path(nodes_lut)


# --------------------------------------------------------------------------- #
# Acquisition parameter files                                                 #
# --------------------------------------------------------------------------- #
def total_readout(acq: AcquisitionConfig, pe_lines: int) -> float:
    """Return ``echo_spacing × (PE lines − 1)`` in seconds."""
    return acq.echo_spacing * max(pe_lines - 1, 0)


def write_acqparams(path: Path, acq: AcquisitionConfig, pe_lines: int, *, synthetic: bool = False) -> Path:
    """Write an FSL ``acqparams.txt``.

    With *synthetic* a second row with zero readout time describes the
    undistorted synthetic b0.
    """
    x, y, z = acq.pe_vector
    rows = [f"{x} {y} {z} {total_readout(acq, pe_lines):.6f}"]
    if synthetic:
        rows.append(f"{x} {y} {z} 0.000000")
    path.write_text("\n".join(rows) + "\n", encoding="utf-8")
    return path


def write_index(path: Path, n_volumes: int) -> Path:
    """Write an eddy ``index.txt`` pointing every volume at row 1."""
    path.write_text(" ".join(["1"] * n_volumes) + "\n", encoding="utf-8")
    return path


# --------------------------------------------------------------------------- #
# 1. distortion_correction – advisory                                         #
# --------------------------------------------------------------------------- #
def distortion_correction(ctx: StageContext, subject: Subject) -> None:
    """Synthetic-b0 susceptibility-field estimation.

    Advisory: without a field, motion correction runs eddy without topup.
    """
    if not subject.has_t1w:
        raise PreconditionError(f"{subject.id}: T1w image required for synthetic b0")
    image = ctx.cfg.tools.synb0_image
    if not image or not ctx.tools.has("docker"):
        raise PreconditionError("synthetic b0 generation needs docker and an image")

    info = ctx.inputs(subject)
    lay = Layout(subject)
    p = subject.paths
    tmp, out = ctx.scratch(subject, "distortion_correction")
    inputs, outputs = tmp / "INPUTS", tmp / "OUTPUTS"
    inputs.mkdir()
    outputs.mkdir()

    mrtrix.dwiextract_b0(ctx.exe("dwiextract"), p.dwi, tmp / "b0s.nii.gz", p.bvec, p.bval).execute(ctx.runner)
    mrtrix.mrmath_mean(ctx.exe("mrmath"), tmp / "b0s.nii.gz", inputs / "b0.nii.gz").execute(ctx.runner)
    shutil.copy2(p.t1w, inputs / "T1.nii.gz")
    acqp = write_acqparams(inputs / "acqparams.txt", ctx.cfg.acquisition, info.pe_lines, synthetic=True)

    synb0 = Synb0Tool(Synb0Config(image, ctx.cfg.tools.freesurfer_license), inputs, outputs)
    synb0.execute(ctx.runner)

    fsl.fslmerge(
        ctx.exe("fslmerge"), tmp / "b0_all", [inputs / "b0.nii.gz", outputs / "b0_u.nii.gz"]
    ).execute(ctx.runner)
    fsl.topup(ctx.exe("topup"), tmp / "b0_all.nii.gz", acqp, out / f"{subject.id}_topup").execute(ctx.runner)
    shutil.copy2(acqp, out / "acqparams.txt")

    ctx.migrate(
        out,
        lay.topup_dir,
        "susceptibility field",
        [lay.topup_fieldcoef.name, f"{subject.id}_topup_movpar.txt", "acqparams.txt"],
    )


# --------------------------------------------------------------------------- #
# 2. basic_preprocessing – fatal                                              #
# --------------------------------------------------------------------------- #
def basic_preprocessing(ctx: StageContext, subject: Subject) -> None:
    """Denoise, remove Gibbs ringing, average b0s and build a brain mask.

    Fatal: nothing downstream can run without these outputs.
    """
    ctx.inputs(subject)
    lay = Layout(subject)
    p = subject.paths
    sid = subject.id
    tmp, out = ctx.scratch(subject, "basic_preprocessing")

    mrtrix.dwidenoise(
        ctx.exe("dwidenoise"), p.dwi, tmp / "denoised.nii.gz", tmp / "noise.nii.gz"
    ).execute(ctx.runner)
    mrtrix.mrdegibbs(ctx.exe("mrdegibbs"), tmp / "denoised.nii.gz", out / lay.dwi_preproc.name).execute(ctx.runner)
    mrtrix.dwiextract_b0(
        ctx.exe("dwiextract"), out / lay.dwi_preproc.name, tmp / "b0s.nii.gz", p.bvec, p.bval
    ).execute(ctx.runner)
    mrtrix.mrmath_mean(ctx.exe("mrmath"), tmp / "b0s.nii.gz", out / lay.b0_mean.name).execute(ctx.runner)
    fsl.bet(ctx.exe("bet"), out / lay.b0_mean.name, out / f"{sid}_brain").execute(ctx.runner)

    ctx.migrate(
        out,
        lay.preproc_dir,
        "preprocessed DWI",
        [lay.dwi_preproc.name, lay.b0_mean.name, lay.brain_mask.name],
    )


# --------------------------------------------------------------------------- #
# 3. motion_correction – fatal                                                #
# --------------------------------------------------------------------------- #
def motion_correction(ctx: StageContext, subject: Subject) -> None:
    """Eddy-current and motion correction.

    Fatal.  Uses the susceptibility field when distortion correction left
    one in the fast tier; otherwise eddy runs without it.
    """
    info = ctx.inputs(subject)
    lay = Layout(subject)
    p = subject.paths
    sid = subject.id
    tmp, out = ctx.scratch(subject, "motion_correction")

    use_field = lay.topup_fieldcoef.is_file() and lay.topup_acqparams.is_file()
    if use_field:
        acqp = lay.topup_acqparams
    else:
        log.info("motion.no_field", subject=sid)
        acqp = write_acqparams(tmp / "acqparams.txt", ctx.cfg.acquisition, info.pe_lines)
    index = write_index(tmp / "index.txt", info.n_volumes)

    prefix = tmp / f"{sid}_dwi_eddy"
    fsl.eddy(
        ctx.exe("eddy"),
        dwi=lay.dwi_preproc,
        mask=lay.brain_mask,
        acqparams=acqp,
        index=index,
        bvec=p.bvec,
        bval=p.bval,
        out_prefix=prefix,
        topup_prefix=lay.topup_prefix if use_field else None,
        threads=ctx.threads,
    ).execute(ctx.runner)

    shutil.move(str(prefix.with_name(prefix.name + ".nii.gz")), str(out / lay.eddy_dwi.name))
    shutil.move(str(prefix.with_name(prefix.name + ".eddy_rotated_bvecs")), str(out / lay.eddy_bvec.name))
    shutil.copy2(p.bval, out / lay.eddy_bval.name)
    shutil.copy2(acqp, out / "acqparams.txt")
    shutil.copy2(index, out / "index.txt")

    ctx.migrate(
        out,
        lay.eddy_dir,
        "eddy-corrected DWI",
        [lay.eddy_dwi.name, lay.eddy_bvec.name, lay.eddy_bval.name],
    )


# --------------------------------------------------------------------------- #
# 4. refinement – advisory                                                    #
# --------------------------------------------------------------------------- #
def _bias_correct(ctx: StageContext, subject: Subject, out_file: Path) -> bool:
    """Run bias correction under the timeout; ``False`` keeps the input."""
    lay = Layout(subject)
    if not ctx.tools.has("dwibiascorrect"):
        log.info("refinement.bias_unavailable", subject=subject.id)
        return False
    tool = mrtrix.dwibiascorrect(
        ctx.exe("dwibiascorrect"),
        lay.eddy_dwi,
        out_file,
        lay.eddy_bvec,
        lay.eddy_bval,
        lay.brain_mask,
        timeout=ctx.cfg.bias_timeout_s,
    )
    try:
        result = ctx.runner.run(tool.build_spec(), allow_timeout=True)
    except ToolError as exc:
        log.warning("refinement.bias_failed", subject=subject.id, error=str(exc))
        delete_files([out_file])
        return False
    if result.timed_out:
        log.warning("refinement.bias_timeout", subject=subject.id, timeout_s=ctx.cfg.bias_timeout_s)
        delete_files([out_file])
        return False
    return True


def refinement(ctx: StageContext, subject: Subject) -> None:
    """Bias-field correction plus T1w → diffusion registration.

    Advisory: later stages fall back to the eddy output and to the
    unregistered T1w.  A bias-correction timeout keeps the unmodified input
    and does not fail the stage.  The registration record is always
    written; ``none`` is a valid terminal outcome.
    """
    lay = Layout(subject)
    sid = subject.id
    tmp, out = ctx.scratch(subject, "refinement")

    _bias_correct(ctx, subject, out / lay.dwi_biascorr.name)

    if subject.has_t1w:
        outcome = ctx.selector.select_and_apply(
            sid, lay.b0_mean, subject.paths.t1w, out_dir=tmp / "registration"
        )
        if outcome.output is not None:
            shutil.copy2(outcome.output, out / lay.t1w_in_dwi.name)
            outcome.output = lay.t1w_in_dwi
    else:
        log.info("refinement.no_t1w", subject=sid)
        outcome = RegistrationOutcome(RegistrationMethod.NONE, False, QualityClass.UNCHECKED)
    outcome.write(out / lay.registration_record.name)

    ctx.migrate(out, lay.refine_dir, "refined DWI", [lay.registration_record.name])


# --------------------------------------------------------------------------- #
# 5. connectivity – advisory                                                  #
# --------------------------------------------------------------------------- #
def _ensure_freesurfer(ctx: StageContext, subject: Subject, tmp: Path) -> None:
    """Reuse a reconstruction in the large tier or run recon-all."""
    lay = Layout(subject)
    if all((lay.freesurfer_subject / rel).is_file() for rel in RECON_CRITICAL):
        log.info("connectivity.freesurfer_reuse", subject=subject.id, path=str(lay.freesurfer_subject))
        return
    sd = tmp / "freesurfer"
    sd.mkdir()
    ReconAllTool(
        ctx.exe("recon-all"),
        subject.id,
        subject.paths.t1w,
        sd,
        threads=ctx.threads,
        license_file=ctx.cfg.tools.freesurfer_license,
    ).execute(ctx.runner)
    ctx.migrate(
        sd,
        lay.freesurfer_root,
        "FreeSurfer reconstruction",
        [Path(subject.id) / rel for rel in RECON_CRITICAL],
    )


def connectivity(ctx: StageContext, subject: Subject) -> None:
    """Structural connectome from tractography and a cortical parcellation.

    Advisory: a failure only means the connectome is absent.  Without a
    registration the raw T1w is used and the fact is logged.
    """
    if not subject.has_t1w:
        raise PreconditionError(f"{subject.id}: T1w image required for connectivity")
    lay = Layout(subject)
    sid = subject.id
    tmp, out = ctx.scratch(subject, "connectivity")

    reg = load_outcome(lay.registration_record)
    if reg.registered and lay.t1w_in_dwi.is_file():
        anat = lay.t1w_in_dwi
    else:
        log.warning("connectivity.unregistered", subject=sid, method=reg.applied_method.value)
        anat = subject.paths.t1w

    _ensure_freesurfer(ctx, subject, tmp)
    fs_lut, nodes_lut = ctx.lookup_tables()
    dwi, bvec, bval = lay.current_dwi()

    mrtrix.fivettgen(ctx.exe("5ttgen"), anat, tmp / "5tt.mif").execute(ctx.runner)
    mrtrix.labelconvert(
        ctx.exe("labelconvert"),
        lay.freesurfer_subject / "mri" / "aparc+aseg.mgz",
        fs_lut,
        nodes_lut,
        tmp / "nodes.mif",
    ).execute(ctx.runner)
    mrtrix.dwi2response(ctx.exe("dwi2response"), dwi, tmp / "response.txt", bvec, bval, lay.brain_mask).execute(ctx.runner)
    mrtrix.dwi2fod(
        ctx.exe("dwi2fod"), dwi, tmp / "response.txt", tmp / "fod.mif", bvec, bval, lay.brain_mask
    ).execute(ctx.runner)

    tracks_out = out / "tracks"
    conn_out = out / "connectome"
    tracks_out.mkdir()
    conn_out.mkdir()
    mrtrix.tckgen(ctx.exe("tckgen"), tmp / "fod.mif", tracks_out / lay.tracks.name, act=tmp / "5tt.mif").execute(ctx.runner)
    mrtrix.tck2connectome(
        ctx.exe("tck2connectome"), tracks_out / lay.tracks.name, tmp / "nodes.mif", conn_out / lay.connectome.name
    ).execute(ctx.runner)

    ctx.migrate(tracks_out, lay.tracks_dir, "tractogram", [lay.tracks.name])
    ctx.migrate(conn_out, lay.connectome_dir, "connectome", [lay.connectome.name])


# --------------------------------------------------------------------------- #
# 6. microstructure – advisory                                                #
# --------------------------------------------------------------------------- #
def microstructure(ctx: StageContext, subject: Subject) -> None:
    """Tensor metrics always; NODDI with two or more non-zero shells.

    Advisory: a failure only means the maps are absent.
    """
    lay = Layout(subject)
    sid = subject.id
    tmp, out = ctx.scratch(subject, "microstructure")
    dwi, bvec, bval = lay.current_dwi()

    maps_out = out / "mrtrix3"
    maps_out.mkdir()
    mrtrix.dwi2tensor(ctx.exe("dwi2tensor"), dwi, tmp / "tensor.nii.gz", bvec, bval, lay.brain_mask).execute(ctx.runner)
    mrtrix.tensor2metric(
        ctx.exe("tensor2metric"),
        tmp / "tensor.nii.gz",
        {m: maps_out / lay.metric_map(m).name for m in TENSOR_METRICS},
        lay.brain_mask,
    ).execute(ctx.runner)
    ctx.migrate(maps_out, lay.mrtrix_dir, "tensor metrics", [lay.metric_map(m).name for m in TENSOR_METRICS])

    shells = shells_from_bvals(read_bvals(bval))
    if len(shells) < 2:
        log.info("microstructure.noddi_skipped", subject=sid, reason="single shell", shells=list(shells))
        return
    if not ctx.tools.has("noddi"):
        log.info("microstructure.noddi_skipped", subject=sid, reason="tool unavailable")
        return
    noddi_out = out / "noddi"
    noddi_out.mkdir()
    NoddiTool(
        ctx.exe("noddi"), dwi, bval, bvec, lay.brain_mask, noddi_out, sid, threads=ctx.threads
    ).execute(ctx.runner)
    ctx.migrate(noddi_out, lay.noddi_dir, "NODDI maps", [lay.noddi_map(m).name for m in NODDI_MAPS])


# --------------------------------------------------------------------------- #
# Stage table                                                                 #
# --------------------------------------------------------------------------- #
def build_stages(ctx: StageContext) -> List[StageSpec]:
    """Return the stage specs in pipeline order."""

    def _lay(s: Subject) -> Layout:
        return Layout(s)

    return [
        StageSpec(
            "distortion_correction",
            StageContract.ADVISORY,
            partial(distortion_correction, ctx),
            fallback="eddy without a susceptibility field",
            enabled=lambda c: c.stages.distortion_correction,
            outputs=lambda s: [_lay(s).topup_fieldcoef],
        ),
        StageSpec(
            "basic_preprocessing",
            StageContract.FATAL,
            partial(basic_preprocessing, ctx),
            outputs=lambda s: [_lay(s).dwi_preproc, _lay(s).b0_mean, _lay(s).brain_mask],
        ),
        StageSpec(
            "motion_correction",
            StageContract.FATAL,
            partial(motion_correction, ctx),
            outputs=lambda s: [_lay(s).eddy_dwi, _lay(s).eddy_bvec, _lay(s).eddy_bval],
        ),
        StageSpec(
            "refinement",
            StageContract.ADVISORY,
            partial(refinement, ctx),
            fallback="unrefined eddy output",
            enabled=lambda c: c.stages.refinement,
            outputs=lambda s: [_lay(s).registration_record],
        ),
        StageSpec(
            "connectivity",
            StageContract.ADVISORY,
            partial(connectivity, ctx),
            fallback="connectome absent",
            enabled=lambda c: c.stages.connectivity,
            outputs=lambda s: [_lay(s).connectome],
        ),
        StageSpec(
            "microstructure",
            StageContract.ADVISORY,
            partial(microstructure, ctx),
            fallback="metric maps absent",
            enabled=lambda c: c.stages.microstructure,
            outputs=lambda s: [_lay(s).metric_map(m) for m in TENSOR_METRICS],
        ),
    ]


__all__ = [
    "Layout",
    "StageContext",
    "TENSOR_METRICS",
    "build_stages",
    "total_readout",
    "write_acqparams",
    "write_index",
    "distortion_correction",
    "basic_preprocessing",
    "motion_correction",
    "refinement",
    "connectivity",
    "microstructure",
]
