import streamlit as st
import os
import sys
import traceback
from io import BytesIO
from xhtml2pdf import pisa

# Add the project root to the Python path to allow importing modules
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from rtxparser import RTXParser
from diagram_generator import ContextDiagramGenerator
from diff_utils import compare_parsed, format_diff_results
from extractors import build_model
from utils import build_report_html, get_table_dataframe, section_frames, statements_dataframe

# --- Page Configuration ---
st.set_page_config(
    page_title="RTXParser Web UI",
    layout="wide",
    initial_sidebar_state="expanded",
)

# --- Initialise Session State ---
for key, default in (
    ('parsed1', None),
    ('model1', None),
    ('parsed2', None),
    ('uploaded_file_name_1', None),
    ('uploaded_file_name_2', None),
    ('analysis_done', False),
    ('comparison_done', False),
    ('diff_results', None),
    ('diff_formatted', None),
    ('processing_error', False),
):
    if key not in st.session_state:
        st.session_state[key] = default

st.title("RTX Router Configuration Analyser")

# --- Sidebar ---
st.sidebar.header("Configuration Options")
uploaded_file = st.sidebar.file_uploader("Choose an RTX config dump (config.txt)", type=['txt', 'conf', 'cfg'])

if uploaded_file is not None and uploaded_file.name != st.session_state.uploaded_file_name_1:
    st.session_state.uploaded_file_name_1 = uploaded_file.name
    st.session_state.parsed1 = None
    st.session_state.model1 = None
    st.session_state.analysis_done = False
    st.session_state.processing_error = False
    st.session_state.comparison_done = False

st.sidebar.markdown("---")
st.sidebar.subheader("Compare Configurations (Optional)")
uploaded_file_compare = st.sidebar.file_uploader("Choose a SECOND config dump to compare",
                                                 type=['txt', 'conf', 'cfg'], key="compare_file")
run_compare = st.sidebar.button("Compare Configurations",
                                disabled=(uploaded_file is None or uploaded_file_compare is None))

if uploaded_file_compare is not None and uploaded_file_compare.name != st.session_state.uploaded_file_name_2:
    st.session_state.uploaded_file_name_2 = uploaded_file_compare.name
    st.session_state.parsed2 = None
    st.session_state.comparison_done = False
    st.session_state.diff_results = None
    st.session_state.diff_formatted = None

st.sidebar.markdown("---")
run_analysis = st.sidebar.button("Classify & Analyse Configuration", disabled=(uploaded_file is None))

# --- Classification ---
if run_analysis and uploaded_file is not None and st.session_state.parsed1 is None:
    main_status = st.status(f"Classifying {st.session_state.uploaded_file_name_1}...", expanded=True)
    try:
        parsed = RTXParser(uploaded_file.getvalue()).parse()
        main_status.write(f"Classified {parsed.statement_count} statements in {len(parsed.contexts)} contexts.")
        model = build_model(parsed)
        main_status.write("Decoded configuration sections.")
        st.session_state.parsed1 = parsed
        st.session_state.model1 = model
        st.session_state.analysis_done = True
        main_status.update(label="Analysis complete.", state="complete", expanded=False)
    except (ValueError, UnicodeError) as e:
        st.session_state.processing_error = True
        main_status.update(label="Analysis failed.", state="error", expanded=True)
        st.error(f"Error while analysing the configuration: {e}")
        st.code(traceback.format_exc())

# --- Comparison ---
if run_compare and uploaded_file is not None and uploaded_file_compare is not None:
    try:
        if st.session_state.parsed1 is None:
            st.session_state.parsed1 = RTXParser(uploaded_file.getvalue()).parse()
            st.session_state.model1 = build_model(st.session_state.parsed1)
            st.session_state.analysis_done = True
        st.session_state.parsed2 = RTXParser(uploaded_file_compare.getvalue()).parse()
        st.session_state.diff_results = compare_parsed(st.session_state.parsed1, st.session_state.parsed2,
                                                       st.session_state.model1)
        st.session_state.diff_formatted = format_diff_results(st.session_state.diff_results)
        st.session_state.comparison_done = True
    except (ValueError, UnicodeError) as e:
        st.session_state.processing_error = True
        st.error(f"Error while comparing configurations: {e}")
        st.code(traceback.format_exc())

# --- Display Results ---
if st.session_state.analysis_done and not st.session_state.processing_error:
    parsed = st.session_state.parsed1
    model = st.session_state.model1

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Lines", parsed.line_count)
    col2.metric("Statements", parsed.statement_count)
    col3.metric("Comments", parsed.comment_count)
    col4.metric("Contexts", len(parsed.contexts))

    tab_contexts, tab_statements, tab_sections, tab_diagram, tab_diff = st.tabs(
        ["Contexts", "Statements", "Decoded Sections", "Diagram", "Comparison"])

    with tab_contexts:
        st.dataframe(get_table_dataframe(
            parsed.context_summary(), ['context', 'kind', 'statements', 'first_line', 'last_line'],
            {'context': 'Context', 'kind': 'Kind', 'statements': 'Statements',
             'first_line': 'First Line', 'last_line': 'Last Line'}), use_container_width=True)

    with tab_statements:
        choices = ['All', 'global'] + [str(c) for c in parsed.contexts]
        selected = st.selectbox("Context", choices)
        if selected == 'All':
            statements = parsed.statements
        elif selected == 'global':
            statements = parsed.global_statements()
        else:
            ctx = next(c for c in parsed.contexts if str(c) == selected)
            statements = parsed.statements_in(ctx)
        st.dataframe(statements_dataframe(statements), use_container_width=True)

    with tab_sections:
        for title, df in section_frames(model):
            st.subheader(title)
            st.dataframe(df, use_container_width=True)
        if model.credentials:
            creds = model.credentials
            st.info(f"Credentials found: {len(creds.get('users', []))} login users, "
                    f"{len(creds.get('ipsec_psk', []))} IPsec pre-shared keys, "
                    f"{len(creds.get('l2tp_auth', []))} L2TP secrets, {len(creds.get('pp_auth', []))} PP users.")

    with tab_diagram:
        generator = ContextDiagramGenerator(parsed, model)
        st.graphviz_chart(generator.build())
        st.download_button("📥 Download DOT Source", data=generator.source,
                           file_name=f"{st.session_state.uploaded_file_name_1}.gv", mime="text/vnd.graphviz")

    with tab_diff:
        if st.session_state.comparison_done:
            st.markdown(st.session_state.diff_formatted, unsafe_allow_html=True)
        else:
            st.write("Upload a second configuration and press 'Compare Configurations'.")

    # --- Export ---
    st.sidebar.markdown("---")
    st.sidebar.subheader("Export Report")
    export_format = st.sidebar.radio("Format", ['HTML', 'PDF'], horizontal=True)
    file_name = os.path.splitext(st.session_state.uploaded_file_name_1 or 'config')[0]
    diff_html = st.session_state.diff_formatted if st.session_state.comparison_done else None
    final_html_content = build_report_html(file_name, parsed, model, diff_html)

    if export_format == 'HTML':
        st.sidebar.download_button(
            label="📥 Download HTML Report",
            data=final_html_content,
            file_name=f"RTX_Analysis_{file_name}.html",
            mime="text/html",
        )
    else:
        pdf_buffer = BytesIO()
        pisa_status = pisa.CreatePDF(final_html_content, dest=pdf_buffer)
        if not pisa_status.err:
            pdf_buffer.seek(0)
            st.sidebar.download_button(
                label="📥 Download PDF Report",
                data=pdf_buffer,
                file_name=f"RTX_Analysis_{file_name}.pdf",
                mime="application/pdf",
            )
        else:
            st.sidebar.error(f"Error generating PDF: {pisa_status.err}")
            st.sidebar.error("Could not convert HTML to PDF. Please try exporting as HTML.")
elif uploaded_file is None:
    st.info("Upload an RTX configuration dump in the sidebar to begin.")
