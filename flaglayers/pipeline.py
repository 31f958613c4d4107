"""Layer extraction pipeline: render, quantize, segment, pack and write."""
import logging
import shutil
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

import numpy as np
from PIL import Image

from flaglayers.debug_utils import audit_layer_plans, audit_regions, region_preview
from flaglayers.locations import resolve_location
from flaglayers.manifest import write_manifest
from flaglayers.packer import pack_regions_into_layers
from flaglayers.palette import extract_paint_entries, force_top_colors, simplify_palette
from flaglayers.quantize import extend_edge_coverage, quantize_to_palette
from flaglayers.rasterize import RASTER_SUFFIXES, SVG_SUFFIXES, load_source
from flaglayers.render import layer_filename, render_layer, write_layer_png
from flaglayers.segment import segment_regions
from flaglayers.types import (
    Color,
    EmptyRasterError,
    LayerConfig,
    LayerPlan,
    Location,
    ManifestEntry,
    Palette,
    PaletteError,
    Raster,
    Region,
)

logger = logging.getLogger(__name__)


@dataclass
class LayerResult:
    """In-memory result of extracting layers from one raster."""
    palette: Palette
    quantized: Raster
    regions: List[Region]
    plans: List[LayerPlan]
    force_top: Set[Color] = field(default_factory=set)

    @property
    def width(self) -> int:
        return self.quantized.shape[1]

    @property
    def height(self) -> int:
        return self.quantized.shape[0]

    def render_layers(self) -> List[Raster]:
        return [render_layer(plan, self.quantized) for plan in self.plans]


@dataclass
class BatchResult:
    """Outcome of processing a directory of sources."""
    entries: Dict[str, ManifestEntry] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    manifest_path: Optional[Path] = None


class FlagLayerPipeline:
    """Turn a flag image into a fixed-size stack of reveal layers."""

    def __init__(
        self,
        config: Optional[LayerConfig] = None,
        locations: Optional[Dict[str, Location]] = None
    ):
        """
        Initialize pipeline.

        Args:
            config: Configuration (uses defaults if None)
            locations: ISO code -> Location table for manifest anchors
        """
        self.config = config or LayerConfig()
        self.locations = locations or {}

    def extract_layers(self, raster: Raster, svg_source: Optional[str] = None) -> LayerResult:
        """
        Run the in-memory pipeline on a rendered raster.

        Args:
            raster: (H, W, 4) uint8 RGBA raster
            svg_source: Source markup for declared paint colors, if any

        Returns:
            LayerResult with palette, quantized raster, regions and plans

        Raises:
            ValueError: If the raster is not an (H, W, 4) array
            EmptyRasterError: If the raster has no opaque pixels or regions
            PaletteError: If no palette can be derived
        """
        config = self.config
        if raster is None or raster.ndim != 3 or raster.shape[2] != 4:
            shape = None if raster is None else raster.shape
            raise ValueError(f"Expected (H, W, 4) RGBA raster, got {shape}")
        if not np.any(raster[..., 3] >= config.alpha_floor):
            raise EmptyRasterError("Raster has no opaque pixels")

        entries = extract_paint_entries(svg_source) if svg_source else []
        candidates = []
        for entry in entries:
            if entry.color not in candidates:
                candidates.append(entry.color)

        palette = simplify_palette(candidates, raster, config)
        if not palette:
            raise PaletteError("Could not derive a palette")

        quantized = quantize_to_palette(raster, palette, config.alpha_floor)
        extend_edge_coverage(quantized, config=config)

        regions = segment_regions(quantized)
        if not regions:
            raise EmptyRasterError("Quantized raster produced no regions")

        force_top = self._resolve_force_top(entries, palette)
        plans = pack_regions_into_layers(regions, config, force_top)

        return LayerResult(
            palette=palette,
            quantized=quantized,
            regions=regions,
            plans=plans,
            force_top=force_top,
        )

    @staticmethod
    def _resolve_force_top(entries, palette: Palette) -> Set[Color]:
        """Map overlay-only declared colors onto the palette they quantize to."""
        overlay_only = force_top_colors(entries)
        if not overlay_only:
            return set()
        base = {palette.nearest(e.color) for e in entries if not e.overlay}
        snapped = {palette.nearest(c) for c in overlay_only}
        return {c for c in snapped if c not in base}

    def process_raster(
        self,
        key: str,
        raster: Raster,
        output_root: Union[str, Path],
        svg_source: Optional[str] = None,
        full_source: Optional[Union[str, Path]] = None
    ) -> Optional[ManifestEntry]:
        """
        Extract and write layers for one image.

        The image's directory ``output_root/key`` is recreated from scratch.
        Images that yield no palette or no regions are skipped: nothing is
        written, any directory from an earlier run is removed, and None is
        returned. A write failure removes the partial directory and re-raises.

        Args:
            key: Image key (names the directory and files)
            raster: Rendered (H, W, 4) raster
            output_root: Root output directory
            svg_source: Source markup, if the image came from an SVG
            full_source: Original file to copy as the full-resolution image

        Returns:
            Manifest entry, or None if the image was skipped
        """
        start_time = time.time()
        image_dir = Path(output_root) / key
        try:
            result = self.extract_layers(raster, svg_source)
        except (EmptyRasterError, PaletteError) as e:
            logger.warning(f"Skipping {key}: {e}")
            if image_dir.exists():
                shutil.rmtree(image_dir)
            return None

        if self.config.save_stages:
            self._save_stages(key, raster, result)

        audit_regions(result.regions, result.quantized)
        audit_layer_plans(result.plans, result.quantized)

        if image_dir.exists():
            shutil.rmtree(image_dir)
        image_dir.mkdir(parents=True)

        try:
            full_name = self._write_full(key, image_dir, raster, svg_source, full_source)
            files = []
            for plan in result.plans:
                fname = layer_filename(
                    key, plan.index, plan.color, with_color=self.config.color_in_filename
                )
                write_layer_png(render_layer(plan, result.quantized), image_dir, fname)
                files.append(fname)
        except Exception:
            # no partial output for this key
            shutil.rmtree(image_dir, ignore_errors=True)
            raise

        entry = ManifestEntry(
            colors=[plan.color for plan in result.plans],
            files=files,
            z=[plan.z for plan in result.plans],
            full=full_name,
            location=resolve_location(key, self.locations),
        )

        elapsed = time.time() - start_time
        logger.info(
            f"{key}: {len(result.palette)} colors, {len(result.regions)} regions, "
            f"{len(files)} layers in {elapsed:.2f}s"
        )
        return entry

    def _write_full(
        self,
        key: str,
        image_dir: Path,
        raster: Raster,
        svg_source: Optional[str],
        full_source: Optional[Union[str, Path]]
    ) -> str:
        if svg_source is not None:
            name = f"{key}__full.svg"
            (image_dir / name).write_text(svg_source, encoding="utf-8")
        elif full_source is not None:
            full_source = Path(full_source)
            name = f"{key}__full{full_source.suffix.lower()}"
            shutil.copyfile(full_source, image_dir / name)
        else:
            name = f"{key}__full.png"
            Image.fromarray(raster).save(image_dir / name)
        return name

    def process_file(
        self,
        path: Union[str, Path],
        output_root: Union[str, Path]
    ) -> Optional[ManifestEntry]:
        """
        Load, render and process a single source file.

        Keys listed in ``config.skip_keys`` are not processed and any stale
        output directory for them is removed.
        """
        path = Path(path)
        key = path.stem
        if key in self.config.skip_keys:
            stale = Path(output_root) / key
            if stale.exists():
                shutil.rmtree(stale)
            logger.info(f"Skipping {key}: listed in skip keys")
            return None

        raster, svg_source = load_source(path, self.config.render_width)
        return self.process_raster(
            key, raster, output_root, svg_source=svg_source, full_source=path
        )

    def process_batch(
        self,
        source_dir: Union[str, Path],
        output_root: Union[str, Path]
    ) -> BatchResult:
        """
        Process every source image in a directory and write the manifest.

        Each image is isolated: a failure is logged and recorded, and the
        batch moves on. With ``config.workers > 1`` images are processed in
        a process pool.
        """
        source_files = get_source_files(source_dir)
        output_root = Path(output_root)
        output_root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Processing {len(source_files)} images from {source_dir}")

        result = BatchResult()
        jobs = [(str(p), str(output_root), self.config, self.locations) for p in source_files]

        if self.config.workers > 1 and len(jobs) > 1:
            with ProcessPoolExecutor(max_workers=self.config.workers) as executor:
                futures = [executor.submit(_process_one, job) for job in jobs]
                outcomes = [f.result() for f in as_completed(futures)]
        else:
            outcomes = [_process_one(job) for job in jobs]

        for key, entry, error in outcomes:
            if error is not None:
                result.failed[key] = error
            elif entry is None:
                result.skipped.append(key)
            else:
                result.entries[key] = entry

        result.skipped.sort()
        result.manifest_path = write_manifest(result.entries, output_root)
        logger.info(
            f"Batch done: {len(result.entries)} written, {len(result.skipped)} skipped, "
            f"{len(result.failed)} failed"
        )
        return result

    def _save_stages(self, key: str, raster: Raster, result: LayerResult):
        """Save intermediate stage images and a summary for one image."""
        stages_dir = (self.config.stages_dir or Path("./stages")) / key
        try:
            stages_dir.mkdir(parents=True, exist_ok=True)
            Image.fromarray(raster).save(stages_dir / "stage_01_rendered.png")
            Image.fromarray(result.quantized).save(stages_dir / "stage_02_quantized.png")
            Image.fromarray(region_preview(result.regions, raster.shape)).save(
                stages_dir / "stage_03_regions.png"
            )
            report = [
                "Layer Extraction Report",
                "=======================",
                f"Image size: {result.width}x{result.height}",
                f"Palette: {', '.join(result.palette)}",
                f"Regions: {len(result.regions)}",
                f"Layers: {len(result.plans)}",
                "",
                "Layers:",
            ]
            for plan in result.plans:
                report.append(
                    f"  {plan.index:02d} {plan.color} area={plan.area} "
                    f"brightness={plan.brightness:.3f} z={plan.z}"
                    + (" force-top" if plan.force_top else "")
                )
            (stages_dir / "stage_04_layers.txt").write_text("\n".join(report), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to save stages for {key}: {e}")


def get_source_files(folder: Union[str, Path]) -> List[Path]:
    """All SVG and raster sources in ``folder``, sorted by name."""
    folder = Path(folder)
    if not folder.exists():
        raise FileNotFoundError(f"Input folder not found: {folder}")
    suffixes = SVG_SUFFIXES | RASTER_SUFFIXES
    return sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in suffixes)


def _process_one(
    job: Tuple[str, str, LayerConfig, Dict[str, Location]]
) -> Tuple[str, Optional[ManifestEntry], Optional[str]]:
    """Process one source file; module-level so it can run in a worker process."""
    path_str, output_root, config, locations = job
    key = Path(path_str).stem
    try:
        pipeline = FlagLayerPipeline(config, locations)
        return key, pipeline.process_file(path_str, output_root), None
    except Exception as e:
        logger.error(f"{key}: processing failed: {e}")
        shutil.rmtree(Path(output_root) / key, ignore_errors=True)
        return key, None, str(e)
