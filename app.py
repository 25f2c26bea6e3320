"""
Karatapp: Streamlit UI entry point.
"""

import logging

import streamlit as st

from karatapp.utils.config import load_config
load_config()

from karatapp.domains.models import ForumCategory, OhyoCategory
from karatapp.infrastructure.backend.supabase_client import SupabaseClient
from karatapp.infrastructure.cache.offline_cache import OfflineCache
from karatapp.infrastructure.storage.asset_store import AssetStore
from karatapp.services.accessibility import FontSize, load_settings, save_settings
from karatapp.services.auth_service import AuthService
from karatapp.services.content_service import kata_service, ohyo_service
from karatapp.services.forum_service import ForumService
from karatapp.services.interaction_service import InteractionService
from karatapp.services.role_service import RoleService
from karatapp.ui.views import apply_accessibility, render_content_grid, render_post, show_error
from karatapp.utils.config import forum_images_bucket
from karatapp.utils.logger import get_logger, setup_logger

setup_logger("karatapp", level=logging.INFO)
log = get_logger()

st.set_page_config(page_title="Karatapp", layout="wide")

FONT_LABELS = {
    FontSize.SMALL: "Klein",
    FontSize.NORMAL: "Normaal",
    FontSize.LARGE: "Groot",
    FontSize.EXTRA_LARGE: "Extra groot",
}


@st.cache_resource
def get_cache() -> OfflineCache:
    return OfflineCache()


def get_client() -> SupabaseClient:
    # One client per browser session so auth tokens are not shared between users.
    if "client" not in st.session_state:
        st.session_state.client = SupabaseClient()
    return st.session_state.client


if "settings" not in st.session_state:
    st.session_state.settings = load_settings()
if "open_post" not in st.session_state:
    st.session_state.open_post = None

try:
    client = get_client()
except ValueError as e:
    log.error("Backend not configured: %s", e)
    st.title("Karatapp")
    st.error(str(e))
    st.stop()

cache = get_cache()
auth = AuthService(client)
roles = RoleService(client)
katas = kata_service(client, cache)
ohyos = ohyo_service(client, cache)
forum = ForumService(client, roles, AssetStore(client, forum_images_bucket(), cache=cache))
interactions = InteractionService(client, roles)

with st.sidebar:
    st.header("Account")
    if auth.is_signed_in:
        user = auth.current_user or {}
        st.caption(f"Ingelogd als **{user.get('email', '')}** · rol: {roles.current_role().value}")
        if st.button("Uitloggen", use_container_width=True):
            auth.sign_out()
            st.rerun()
    else:
        with st.form("sign_in"):
            email = st.text_input("E-mail")
            password = st.text_input("Wachtwoord", type="password")
            if st.form_submit_button("Inloggen", use_container_width=True):
                signed_in = False
                try:
                    auth.sign_in(email, password)
                    signed_in = True
                except Exception as e:
                    show_error(e, "sign in")
                if signed_in:
                    st.rerun()

    st.header("Toegankelijkheid")
    settings = st.session_state.settings
    font = st.selectbox(
        "Tekstgrootte",
        list(FontSize),
        index=list(FontSize).index(settings.font_size),
        format_func=lambda f: FONT_LABELS[f],
    )
    dyslexia = st.toggle("Dyslexievriendelijk", value=settings.dyslexia_friendly)
    contrast = st.toggle("Hoog contrast", value=settings.high_contrast)
    tts = st.toggle("Voorlezen", value=settings.tts_enabled)
    rate = st.slider("Spreeksnelheid", 0.1, 1.0, settings.speech_rate, 0.05, disabled=not tts)
    pitch = st.slider("Toonhoogte", 0.5, 2.0, settings.speech_pitch, 0.05, disabled=not tts)
    updated = settings.with_changes(
        font_size=font,
        dyslexia_friendly=dyslexia,
        high_contrast=contrast,
        tts_enabled=tts,
        speech_rate=rate,
        speech_pitch=pitch,
    )
    if updated != settings:
        st.session_state.settings = updated
        save_settings(updated)

    with st.expander("Offline cache"):
        if st.button("Cache wissen", use_container_width=True):
            removed = cache.clear()
            st.caption(f"{removed} bestanden verwijderd.")

apply_accessibility(st.session_state.settings)
st.title("Karatapp")

kata_tab, ohyo_tab, forum_tab = st.tabs(["Kata's", "Ohyo's", "Forum"])

with kata_tab:
    query = st.text_input("Zoek kata", key="kata_query")
    try:
        items = katas.search(query)
        if katas.is_offline:
            st.warning("Offline: opgeslagen gegevens worden getoond.")
        with st.spinner("Afbeeldingen en video's laden…"):
            items = [katas.with_media(i) for i in items]
        render_content_grid(items)
    except Exception as e:
        show_error(e, "load katas")

with ohyo_tab:
    col_q, col_c = st.columns([3, 1])
    with col_q:
        query = st.text_input("Zoek ohyo", key="ohyo_query")
    with col_c:
        category = st.selectbox("Categorie", list(OhyoCategory), format_func=lambda c: c.display_name)
    try:
        items = ohyos.search(query, category)
        if ohyos.is_offline:
            st.warning("Offline: opgeslagen gegevens worden getoond.")
        render_content_grid([ohyos.with_images(i) for i in items])
    except Exception as e:
        show_error(e, "load ohyo")

needs_rerun = False

with forum_tab:
    if st.session_state.open_post is not None:
        post_id = st.session_state.open_post
        if st.button("← Terug naar overzicht"):
            st.session_state.open_post = None
            needs_rerun = True
        try:
            post, threads = forum.get_post_with_comments(post_id)
            render_post(post, threads)
            likes = interactions.like_count("forum_post", post_id)
            if auth.is_signed_in:
                liked = interactions.is_liked("forum_post", post_id)
                if st.button(f"{'💙' if liked else '🤍'} {likes}", key="like_post"):
                    interactions.toggle_like("forum_post", post_id)
                    needs_rerun = True
            else:
                st.caption(f"{likes} likes")
            if auth.is_signed_in and not post.is_locked:
                with st.form("reply", clear_on_submit=True):
                    parents = {None: "Reactie op bericht"}
                    parents.update({c.id: f"Antwoord op {c.author_name}: {c.content[:40]}" for c in post.comments})
                    parent = st.selectbox("Reageer op", list(parents), format_func=lambda k: parents[k])
                    text = st.text_area("Reactie")
                    if st.form_submit_button("Plaatsen"):
                        forum.add_comment(post_id, text, parent)
                        needs_rerun = True
            elif post.is_locked:
                st.info("Dit bericht is gesloten voor nieuwe reacties.")
            if auth.is_signed_in and roles.can_moderate():
                c1, c2 = st.columns(2)
                if c1.button("Vastpinnen aan/uit", use_container_width=True):
                    forum.toggle_pin(post_id)
                    needs_rerun = True
                if c2.button("Vergrendelen aan/uit", use_container_width=True):
                    forum.toggle_lock(post_id)
                    needs_rerun = True
        except Exception as e:
            show_error(e, f"post {post_id}")
    else:
        col_q, col_c = st.columns([3, 1])
        with col_q:
            search = st.text_input("Zoek in forum", key="forum_query")
        with col_c:
            options = [None] + list(ForumCategory)
            forum_category = st.selectbox(
                "Categorie",
                options,
                format_func=lambda c: "Alle" if c is None else c.display_name,
                key="forum_category",
            )
        try:
            for post in forum.list_posts(forum_category, search):
                with st.container(border=True):
                    prefix = ("📌 " if post.is_pinned else "") + ("🔒 " if post.is_locked else "")
                    st.markdown(f"**{prefix}{post.title}**")
                    st.caption(f"{post.category.display_name} · {post.author_name}")
                    if st.button("Openen", key=f"open_{post.id}"):
                        st.session_state.open_post = post.id
                        needs_rerun = True
        except Exception as e:
            show_error(e, "load forum")

        if auth.is_signed_in:
            with st.expander("Nieuw bericht"):
                with st.form("new_post", clear_on_submit=True):
                    title = st.text_input("Titel")
                    body = st.text_area("Bericht")
                    cat = st.selectbox("Categorie", list(ForumCategory), format_func=lambda c: c.display_name)
                    if st.form_submit_button("Plaatsen"):
                        try:
                            forum.create_post(title, body, cat)
                            needs_rerun = True
                        except Exception as e:
                            show_error(e, "create post")

if needs_rerun:
    st.rerun()
