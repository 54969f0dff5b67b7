import os
import tempfile

import streamlit as st
from PIL import Image

from logging_config import setup_logging
from polaroid import Polaroid
from polaroid_config import DEFAULT_DPI, DEFAULT_OUTPUT_FORMAT, DPI_OPTIONS, LOG_LEVEL
from polaroid_errors import PolaroidError
from polaroid_templates import POLAROID_TEMPLATES, TemplateKind
from print_settings import pixels_to_mm

st.set_page_config(
    page_title="Polaroid Print",
    page_icon="🖼️",
    layout="wide",
    initial_sidebar_state="expanded"
)

setup_logging(LOG_LEVEL)


def describe_template(kind):
    """Label for the template selector"""
    if kind == "Auto":
        return "Auto (from aspect ratio)"
    template = POLAROID_TEMPLATES[kind]
    image = template.image_size
    return f"{kind.value.title()} ({image.width.mm:g}×{image.height.mm:g}mm photo)"


def run_polaroid(uploaded_file, dpi, kind, output_format):
    """Run the polaroid pipeline on an uploaded file, returns (polaroid, encoded bytes)"""
    suffix = os.path.splitext(uploaded_file.name)[1] or ".png"
    with tempfile.TemporaryDirectory() as tmp_dir:
        input_path = os.path.join(tmp_dir, f"input{suffix}")
        with open(input_path, "wb") as f:
            f.write(uploaded_file.getvalue())

        if kind == "Auto":
            polaroid = Polaroid.from_file(input_path, dpi=dpi)
        else:
            polaroid = Polaroid.for_kind(kind, dpi=dpi)
            polaroid.load(input_path)

        polaroid.process()

        output_path = os.path.join(tmp_dir, f"polaroid.{output_format}")
        polaroid.write(output_path)
        with open(output_path, "rb") as f:
            data = f.read()

    return polaroid, data


st.write("# Polaroid Print 🖼️")

col1, col2 = st.columns([2, 1])

with col1:
    st.markdown("### 📂 Upload Your Photo")
    uploaded_file = st.file_uploader(
        "Drag and drop your photo here, or click to browse",
        type=['png', 'jpg', 'jpeg', 'tif', 'tiff', 'pdf'],
        help="Supported formats: PNG, JPG, JPEG, TIFF, PDF (first page)"
    )

with col2:
    st.markdown("### ⚙️ Print Settings")

    dpi = st.selectbox(
        "Select DPI (Quality):",
        DPI_OPTIONS,
        index=DPI_OPTIONS.index(DEFAULT_DPI) if DEFAULT_DPI in DPI_OPTIONS else 1,
        help="Higher DPI = better quality but larger file size"
    )

    template_choice = st.selectbox(
        "Template:",
        ["Auto"] + list(TemplateKind),
        format_func=describe_template,
        index=0
    )

    st.info(f"📊 **DPI:** {dpi}\n\n📁 **Format:** {DEFAULT_OUTPUT_FORMAT.upper()} (CMYK)")

if uploaded_file is not None:
    st.markdown("---")
    st.markdown("### 🔄 Processing")

    if st.button("🚀 Create Polaroid", type="primary"):
        with st.spinner("Building the print..."):
            try:
                polaroid, data = run_polaroid(uploaded_file, dpi, template_choice, DEFAULT_OUTPUT_FORMAT)
            except PolaroidError as e:
                st.error(f"Processing failed: {e}")
                st.stop()

        st.success("🎉 **Polaroid ready!**")

        template = polaroid.template
        stages = dict(polaroid.stages)
        page = stages["page"].size

        summary_col1, summary_col2 = st.columns(2)
        with summary_col1:
            st.markdown("**📊 Summary:**")
            st.write(f"• **Template:** {template.kind.value}")
            st.write(f"• **Photo area:** {template.image_size.width.mm:g} × {template.image_size.height.mm:g} mm")
            st.write(f"• **Page:** {template.output_size.width.mm:g} × {template.output_size.height.mm:g} mm")
            st.write("• **Color space:** CMYK")
        with summary_col2:
            st.markdown("**⚙️ Technical Details:**")
            st.write(f"• **Resolution:** {polaroid.dpi} DPI")
            for name, placement in polaroid.stages:
                size = placement.size
                st.write(f"• **{name}:** {size.width} × {size.height} px")
            st.write(f"• **Page check:** {pixels_to_mm(page.width, polaroid.dpi):.1f} × "
                     f"{pixels_to_mm(page.height, polaroid.dpi):.1f} mm")

        base_name = os.path.splitext(uploaded_file.name)[0]
        st.download_button(
            label="📥 Download Print File",
            data=data,
            file_name=f"{base_name}.{DEFAULT_OUTPUT_FORMAT}",
            mime="image/tiff" if DEFAULT_OUTPUT_FORMAT.startswith("tif") else "application/octet-stream",
            type="primary"
        )

        st.markdown("### 👁️ Preview")
        display_image = polaroid.raster.image
        display_image = display_image.convert('RGB') if display_image.mode == 'CMYK' else display_image
        display_width = min(800, display_image.width)
        display_height = int(display_image.height * (display_width / display_image.width))
        display_image = display_image.resize((display_width, display_height), Image.Resampling.LANCZOS)
        st.image(display_image, caption="Print preview (RGB)")

st.markdown("---")
st.markdown("### 📚 How It Works")

with st.expander("🔍 Click to see the processing pipeline"):
    st.markdown("""
    1. **🧭 Template:** square, horizontal or vertical, picked from the photo's aspect ratio
    2. **📏 Fill & crop:** scales the photo to cover the photo area, then crops the center
    3. **🔲 Border:** a thin 0.2mm grey line around the photo
    4. **🖼️ Frame:** white matte sized like a real instant-film print
    5. **📄 Page:** the framed photo is centered on the output page
    6. **🎨 CMYK:** converted for print and tagged with the chosen DPI
    """)
