#!/usr/bin/env python3
"""
QR Image to SVG Web Interface

A simple Gradio-based web UI for converting photos of printed QR-style
grids into SVG tile matrices.

Run with: python app.py
Then open http://localhost:7860 in your browser
"""

import sys
from pathlib import Path
import tempfile
import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import gradio as gr
from qr_image2svg import QRConverter, QRImageError, MarkerNotFoundError
from qr_image2svg.synthetic import render_symbol


def process_image(
    image,
    steps_mode: str,
    steps: int,
    threshold: int,
    color_model: str,
    trim: bool
):
    """
    Convert an uploaded image.

    Returns SVG preview markup, stats text and the SVG file path for download.
    """
    if image is None:
        return "", "Please upload an image first.", None

    if not isinstance(image, np.ndarray):
        return "", "Invalid image format.", None

    converter = QRConverter(
        steps="auto" if steps_mode == "Auto" else int(steps),
        threshold=int(threshold),
        color_model=None if color_model == "Auto" else color_model.lower(),
        trim=trim
    )

    try:
        converter.load_array(image)
        converter.convert()
    except MarkerNotFoundError as e:
        return "", f"**Grid size not detected** ({e.estimate.reason}). Set the tile count manually.", None
    except QRImageError as e:
        return "", f"**Conversion failed:** {e}", None

    info = converter.preview()
    export_dir = tempfile.mkdtemp(prefix="qrimg2svg_")
    svg_path = str(Path(export_dir) / "output.svg")
    svg = converter.export_svg(svg_path)

    version = info.get("estimated_version")
    stats_text = f"""## Conversion Complete!

| Metric | Value |
|--------|-------|
| Input Size | {image.shape[1]} x {image.shape[0]} pixels |
| Grid Size | {info['grid_size']} x {info['grid_size']} |
| Pixels per Tile | {info['pixels_per_tile']} |
| Rescaled | {'yes' if info['rescaled'] else 'no'} |
| Filled Tiles | {info['filled_tiles']:,} |
| Detected Version | {version if version is not None else '-'} |

**Settings:** steps={steps_mode if steps_mode == 'Auto' else steps}, threshold={threshold}, color model={color_model}
"""

    preview = f'<div style="width: 320px; background: #fff; padding: 16px;">{svg}</div>'
    return preview, stats_text, svg_path


def create_demo_image(version: str):
    """Create a synthetic symbol for testing."""
    if not version:
        return None

    return render_symbol(version=int(version), module_size=9, quiet_zone=4, data_seed=7)


# Build the Gradio interface
with gr.Blocks(title="QR Image to SVG") as app:

    gr.Markdown("""
    # QR Image to SVG
    ### Turn a photo of a printed QR-style grid into a clean vector

    Upload an image or try a demo, adjust the settings, and download the SVG!
    """)

    with gr.Row():
        # Left column - Input
        with gr.Column(scale=1):
            gr.Markdown("### Input Image")

            image_input = gr.Image(
                label="Upload Image",
                type="numpy",
                image_mode="RGB"
            )

            with gr.Row():
                demo_dropdown = gr.Dropdown(
                    choices=["1", "2", "3", "5"],
                    label="Or try a demo (QR version)"
                )
                demo_btn = gr.Button("Load Demo")

            gr.Markdown("### Settings")

            steps_mode = gr.Radio(
                choices=["Auto", "Manual"],
                value="Auto",
                label="Tiles per Axis"
            )

            steps = gr.Slider(
                minimum=21,
                maximum=177,
                value=21,
                step=4,
                label="Manual Tiles per Axis"
            )

            threshold = gr.Slider(
                minimum=0,
                maximum=255,
                value=127,
                step=1,
                label="Threshold"
            )

            color_model = gr.Dropdown(
                choices=["Auto", "Gray", "RGB", "CMYK"],
                value="Auto",
                label="Color Model"
            )

            trim = gr.Checkbox(value=True, label="Trim background border")

            generate_btn = gr.Button("Convert to SVG", variant="primary")

        # Middle column - Preview
        with gr.Column(scale=2):
            gr.Markdown("### SVG Preview")

            svg_preview = gr.HTML()

            stats_output = gr.Markdown(
                value="Upload an image and click 'Convert' to see results."
            )

        # Right column - Downloads
        with gr.Column(scale=1):
            gr.Markdown("### Download")

            svg_output = gr.File(label="SVG")

            gr.Markdown("""
            ---
            **Tips:**
            - **Auto** reads the grid size from the corner markers
            - Lower the **threshold** for faded prints
            - Disable **trim** if the code touches the image edge
            """)

    # Wire up events
    demo_btn.click(
        fn=create_demo_image,
        inputs=[demo_dropdown],
        outputs=[image_input]
    )

    generate_btn.click(
        fn=process_image,
        inputs=[image_input, steps_mode, steps, threshold, color_model, trim],
        outputs=[svg_preview, stats_output, svg_output]
    )


if __name__ == "__main__":
    print("\n" + "="*60)
    print("QR Image to SVG Web Interface")
    print("="*60)
    print("\nStarting server...")
    print("Open http://localhost:7860 in your browser\n")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False
    )
