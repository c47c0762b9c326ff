"""
Painted Plan Progress Analysis

Command-line entry point that runs the progress pipeline over a directory of photos.

Usage:
    python analyze_progress.py <image_directory> [--output <output_dir>] [--visualize] [--summary]
    python analyze_progress.py <image_directory> --template-image ref.jpg --template-mask ref.png
    python analyze_progress.py <image_directory> --build-template clean_plan.jpg
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import cv2
import matplotlib.pyplot as plt
import numpy as np

from plan_progress import ColorProfile, ProgressPipeline, QrCornerError, Template, TemplateBuilder
from plan_progress.config import load_config


IMAGE_PATTERNS = ['*.jpg', '*.jpeg', '*.png', '*.JPG', '*.JPEG', '*.PNG']


def find_images(input_dir: Path) -> List[Path]:
    image_files = []
    for ext in IMAGE_PATTERNS:
        image_files.extend(input_dir.glob(ext))
    return sorted(set(image_files))


def save_summary_chart(rows: List[Dict], output_dir: Path) -> Path:
    """
    Stacked bar chart of normal / overtime percentages per image.

    Args:
        rows: Per-image dicts with 'image' and the result fields
        output_dir: Where summary_progress.png is written

    Returns:
        Path of the saved figure
    """
    names = [r['image'] for r in rows]
    normal = np.array([r['normalPercent'] for r in rows])
    ot = np.array([r['otPercent'] for r in rows])
    x = np.arange(len(rows))

    fig, ax = plt.subplots(figsize=(max(6, 1.2 * len(rows)), 5))
    ax.bar(x, normal, color='#1f5fdc', label='Normal')
    ax.bar(x, ot, bottom=normal, color='#e60000', label='Overtime')

    for i, r in enumerate(rows):
        ax.text(i, min(100, r['totalPercent']) + 1, f"{r['totalPercent']:.1f}%",
                ha='center', fontsize=8)

    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=45, ha='right', fontsize=8)
    ax.set_ylim(0, 110)
    ax.set_ylabel('Painted (%)')
    ax.set_title('Plan progress')
    ax.legend()

    plt.tight_layout()
    summary_file = output_dir / "summary_progress.png"
    plt.savefig(summary_file, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return summary_file


def main():
    parser = argparse.ArgumentParser(description='Painted Plan Progress Analysis')
    parser.add_argument('input_dir', type=str, help='Directory containing input images')
    parser.add_argument('--output', '-o', type=str, help='Output directory (default: input_dir/progress_results)')
    parser.add_argument('--template-image', type=str, help='Stored template reference image')
    parser.add_argument('--template-mask', type=str, help='Stored template paintable mask (PNG)')
    parser.add_argument('--build-template', type=str, metavar='IMG',
                        help='Build a template from a clean plan photo before analyzing')
    parser.add_argument('--profile', type=str, help='Color profile JSON file')
    parser.add_argument('--qr', action='store_true', help='Rectify photos with QR corner markers')
    parser.add_argument('--visualize', '-v', action='store_true', help='Save stage visualizations')
    parser.add_argument('--summary', action='store_true', help='Save a summary bar chart')
    parser.add_argument('--debug', action='store_true', help='Write intermediate debug images')
    parser.add_argument('--config', type=str, help='JSON file with configuration overrides')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    input_dir = Path(args.input_dir)
    if not input_dir.exists():
        print(f"Error: Input directory does not exist: {input_dir}")
        sys.exit(1)

    if bool(args.template_image) != bool(args.template_mask):
        print("Error: --template-image and --template-mask must be given together")
        sys.exit(1)

    output_dir = Path(args.output) if args.output else input_dir / "progress_results"
    output_dir.mkdir(exist_ok=True, parents=True)

    config = load_config(args.config)

    profile = None
    if args.profile:
        with open(args.profile, 'r', encoding='utf-8') as f:
            profile = ColorProfile.from_dict(json.load(f))
        print(f"Color profile: {len(profile.swatches)} swatch(es), tolerance {profile.tolerance}")

    # Template
    template = None
    if args.build_template:
        data = Path(args.build_template).read_bytes()
        template = TemplateBuilder(config).build(data)
        image_path = output_dir / "template.jpg"
        mask_path = output_dir / "template_paintable.png"
        template.save(image_path, mask_path)
        print(f"Template built: {template.width}x{template.height}, "
              f"paintable={template.paintable_pixels}px -> {image_path.name}, {mask_path.name}")
    elif args.template_image:
        template = Template.load(args.template_image, args.template_mask)
        if template is None:
            print("Warning: Could not read template files, using default analysis")

    image_files = find_images(input_dir)
    print(f"Found {len(image_files)} image(s) to process\n")

    if not image_files:
        print("No images found!")
        sys.exit(1)

    pipeline = ProgressPipeline(config)
    debug_dir = output_dir / "debug" if args.debug else None
    rows = []

    for idx, img_path in enumerate(image_files, 1):
        print(f"[{idx}/{len(image_files)}] Processing {img_path.name}...")

        image = cv2.imread(str(img_path))
        if image is None:
            print("  Warning: Could not read image")
            continue

        try:
            results = pipeline.process_frame(image, profile, template, args.qr, debug_dir)
        except QrCornerError as e:
            print(f"  QR correction failed: {e}")
            continue

        result = results['result']
        print(f"  {result}")
        rows.append(dict(image=img_path.name, **result.to_dict()))

        if args.visualize:
            vis = pipeline.visualize_results(results)
            out_path = output_dir / f"{img_path.stem}_progress.jpg"
            cv2.imwrite(str(out_path), vis)
            print(f"  Saved: {out_path.name}")

    results_file = output_dir / "results.json"
    with open(results_file, 'w', encoding='utf-8') as f:
        json.dump(rows, f, indent=2)

    if args.summary and rows:
        summary_file = save_summary_chart(rows, output_dir)
        print(f"Summary chart saved: {summary_file}")

    print(f"\nDone! Results saved to: {output_dir}")


if __name__ == "__main__":
    main()
