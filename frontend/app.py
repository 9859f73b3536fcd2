from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

# app.py
import base64
import datetime as dt
import math
import os
from urllib.parse import quote, unquote

import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="docfill", layout="wide")

BACKEND = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")
USER_ID = os.getenv("DOCFILL_DEFAULT_USER", "demo-user")

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MAX_UPLOAD_MB = float(os.getenv("DOCFILL_MAX_UPLOAD_MB", "10"))


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{round(size / math.pow(1024, i), 2):g} {units[i]}"


def show_error(r: requests.Response) -> None:
    try:
        detail = r.json().get("detail", r.text)
    except Exception:
        st.error(r.text)
        return
    if isinstance(detail, dict):
        st.error(detail.get("message", "Request failed"))
        for field, msg in (detail.get("errors") or {}).items():
            st.caption(f"• **{field}**: {msg}")
    else:
        st.error(detail)


def api_get(path: str, **params):
    params.setdefault("user_id", USER_ID)
    r = requests.get(f"{BACKEND}{path}", params=params, timeout=30)
    if not r.ok:
        show_error(r)
        return None
    return r.json()


def to_data_uri(uploaded) -> str:
    encoded = base64.b64encode(uploaded.getvalue()).decode("ascii")
    return f"data:{uploaded.type or 'image/png'};base64,{encoded}"


# Session state
if "form_data" not in st.session_state:
    st.session_state.form_data = {}
if "preview" not in st.session_state:
    st.session_state.preview = ""


# ------------- Sidebar: navigation -------------
st.sidebar.title("docfill")
page = st.sidebar.radio("Go to", ["Dashboard", "Templates", "Generator", "Generated PDFs"])
st.sidebar.caption(f"Backend: {BACKEND}")


# ------------- Dashboard -------------
if page == "Dashboard":
    st.title("Dashboard")
    stats = api_get("/dashboard/stats")
    if stats:
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Templates", stats.get("total_templates", 0))
        c2.metric("Generated PDFs", stats.get("total_generated_pdfs", 0))
        c3.metric("Last upload", stats.get("recent_activity") or "–")
        c4.metric("Most used", stats.get("most_used_template") or "–")


# ------------- Templates -------------
elif page == "Templates":
    st.title("Templates")

    with st.expander("Upload a Word template", expanded=True):
        st.caption("Use `{placeholder_name}` tokens in the document, e.g. `{client_name}` or `{company_logo}`.")
        uploaded = st.file_uploader("Word document", type=["docx", "doc"])
        if uploaded is not None:
            size = len(uploaded.getvalue())
            st.caption(f"{uploaded.name} · {format_file_size(size)}")
            if size > MAX_UPLOAD_MB * 1024 * 1024:
                st.error(f"File is larger than {MAX_UPLOAD_MB:g} MB.")
            elif st.button("Upload"):
                files = {"document": (uploaded.name, uploaded.getvalue(), uploaded.type or DOCX_MIME)}
                r = requests.post(f"{BACKEND}/templates/upload", files=files, params={"user_id": USER_ID}, timeout=60)
                if r.ok:
                    j = r.json()
                    st.success(f"Uploaded **{j['template']['name']}** · {j['placeholders_detected']} placeholders detected")
                else:
                    show_error(r)

    search = st.text_input("Search templates")
    templates = api_get("/templates", search=search) if search else api_get("/templates")
    if templates:
        df = pd.DataFrame(
            [
                {
                    "name": t["name"],
                    "file": t["filename"],
                    "placeholders": len(t.get("placeholders", [])),
                    "sections": t.get("sections", 1),
                    "uploaded": t.get("uploaded_at", "")[:19].replace("T", " "),
                }
                for t in templates
            ]
        )
        st.dataframe(df, use_container_width=True)

        names = {t["id"]: t["name"] for t in templates}
        to_delete = st.selectbox("Delete template", options=[""] + list(names), format_func=lambda i: names.get(i, "—"))
        if to_delete and st.button("Delete"):
            r = requests.delete(f"{BACKEND}/templates/{to_delete}", params={"user_id": USER_ID}, timeout=30)
            if r.ok:
                st.success("Template deleted")
                st.rerun()
            else:
                show_error(r)
    elif templates is not None:
        st.info("No templates yet. Upload a .docx to get started.")


# ------------- Generator -------------
elif page == "Generator":
    st.title("Generator")
    templates = api_get("/templates") or []
    if not templates:
        st.info("Upload a template first.")
        st.stop()

    names = {t["id"]: t["name"] for t in templates}
    template_id = st.selectbox("Template", options=list(names), format_func=lambda i: names[i])
    template = next(t for t in templates if t["id"] == template_id)

    if st.session_state.get("template_id") != template_id:
        st.session_state.template_id = template_id
        st.session_state.form_data = {}
        st.session_state.preview = ""

    left, right = st.columns([2, 3])
    form_data = {}
    with left:
        st.subheader("Fields")
        for ph in template.get("placeholders", []):
            name, label, kind = ph["name"], ph["label"], ph["type"]
            key = f"field_{template_id}_{name}"
            if kind == "image":
                img = st.file_uploader(label, type=["png", "jpg", "jpeg", "gif", "webp"], key=key)
                if img is not None:
                    form_data[name] = to_data_uri(img)
                    st.image(img.getvalue(), width=160)
            elif kind == "date":
                value = st.date_input(label, value=None, key=key)
                form_data[name] = value.isoformat() if isinstance(value, dt.date) else ""
            elif kind == "number":
                form_data[name] = st.text_input(label, key=key, placeholder="e.g. 42")
            else:
                form_data[name] = st.text_input(label, key=key)
        st.session_state.form_data = form_data

        pdf_name = st.text_input("PDF name", value=f"{template['name']} - {dt.date.today().isoformat()}")
        b1, b2, b3 = st.columns(3)
        do_preview = b1.button("Preview")
        do_save = b2.button("Generate & save")
        do_download = b3.button("Download")

    payload = {"template_id": template_id, "form_data": form_data, "user_id": USER_ID}

    if do_preview:
        r = requests.post(f"{BACKEND}/preview", json=payload, timeout=30)
        if r.ok:
            st.session_state.preview = r.json().get("content", "")
        else:
            show_error(r)

    if do_save:
        with st.spinner("Generating PDF…"):
            r = requests.post(f"{BACKEND}/generate-pdf", json={**payload, "name": pdf_name}, timeout=120)
        if r.ok:
            st.success("PDF generated successfully! It is listed under Generated PDFs.")
        else:
            show_error(r)

    if do_download:
        with st.spinner("Rendering PDF…"):
            r = requests.post(f"{BACKEND}/generate-pdf-download", json=payload, timeout=120)
        if r.ok:
            st.download_button(
                "Save PDF",
                r.content,
                file_name=f"{template['name'].replace(' ', '_')}.pdf",
                mime="application/pdf",
            )
        else:
            show_error(r)

    with right:
        st.subheader("Preview")
        st.text_area("Content", value=st.session_state.preview or template["original_content"], height=520, disabled=True)


# ------------- Generated PDFs -------------
elif page == "Generated PDFs":
    st.title("Generated PDFs")
    pdfs = api_get("/generated-pdfs")
    if not pdfs:
        if pdfs is not None:
            st.info("No PDFs generated yet.")
        st.stop()

    st.dataframe(
        pd.DataFrame(
            [{"name": p["name"], "created": p["created_at"][:19].replace("T", " "), "fields": len(p["form_data"])} for p in pdfs]
        ),
        use_container_width=True,
    )

    for p in pdfs:
        with st.expander(p["name"]):
            filename = unquote((p.get("pdf_url") or "").rsplit("/", 1)[-1])
            c1, c2 = st.columns(2)
            if filename:
                r = requests.get(f"{BACKEND}/pdfs/{quote(filename)}/download", timeout=60)
                if r.ok:
                    c1.download_button("Download", r.content, file_name=f"{p['name']}.pdf", mime="application/pdf", key=f"dl_{p['id']}")
                else:
                    c1.caption("PDF file not available")
            if c2.button("Delete", key=f"del_{p['id']}"):
                r = requests.delete(f"{BACKEND}/generated-pdfs/{p['id']}", params={"user_id": USER_ID}, timeout=30)
                if r.ok:
                    st.success("PDF deleted")
                    st.rerun()
                else:
                    show_error(r)
            st.text(p.get("pdf_content") or "")
