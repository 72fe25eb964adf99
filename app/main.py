"""
Streamlit Frontend for Jarvis Production Tracker

This is the screen the technician uses at the end of (or during) a
working day, usually on a phone and often with a bad connection.

DESIGN PRINCIPLES:
1. Logging work takes one tap (quick add) or one sentence (Jarvis)
2. Numbers first: today, this month, goal progress
3. Works offline: nothing here waits on the network to show data
4. Deleting asks for confirmation
5. Backups are always one download away

All state lives in the JarvisController; this module only renders it.
"""

import asyncio
from datetime import date, timedelta

import streamlit as st

from production_tracker.config import validate_all_settings
from production_tracker.models import (
    InstallType,
    Sender,
    Theme,
    UserProfile,
    UserSettings,
    VoiceSettings,
    label_for,
)
from production_tracker.orchestrator import (
    JarvisController,
    TurnInProgressError,
    create_app_components,
)
from production_tracker.queries import (
    daily_series,
    dashboard_stats,
    filter_history,
    goal_progress,
    monthly_totals,
    period_analysis,
)
from production_tracker.services import BackendStatus


# Page configuration
st.set_page_config(
    page_title="Jarvis - Producción",
    page_icon="🛰️",
    layout="centered",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 6px;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
    }
    .pending-badge {
        color: #ffc107;
        font-size: 0.8em;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_controller() -> JarvisController:
    """Get or create the application controller (cached)."""
    try:
        controller = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"No se pudo conectar el almacenamiento remoto: {e}")
        controller = create_app_components(use_storage=False)
    run_async(controller.refresh())
    return controller


def money(amount) -> str:
    return f"${amount:,.2f}"


def main():
    """Main application entry point."""
    controller = get_controller()
    settings = controller.settings

    name = settings.nickname or "técnico"
    st.sidebar.title("🛰️ Jarvis")
    st.sidebar.caption(f"Hola, {name}")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Ir a:",
        ["📊 Dashboard", "🗂️ Historial", "📈 Análisis", "🤖 Jarvis", "⚙️ Ajustes"],
        index=0,
    )

    st.sidebar.markdown("---")
    pending = len(controller.store.pending_records())
    if pending:
        st.sidebar.markdown(
            f'<span class="pending-badge">⏳ {pending} registros sin sincronizar</span>',
            unsafe_allow_html=True,
        )
    if st.sidebar.button("🔄 Sincronizar"):
        with st.spinner("Sincronizando..."):
            run_async(controller.refresh())
        st.rerun()

    # Route to appropriate page
    if page == "📊 Dashboard":
        render_dashboard_page(controller)
    elif page == "🗂️ Historial":
        render_history_page(controller)
    elif page == "📈 Análisis":
        render_analysis_page(controller)
    elif page == "🤖 Jarvis":
        render_chat_page(controller)
    elif page == "⚙️ Ajustes":
        render_settings_page(controller)


def render_quick_add(controller: JarvisController):
    """One-tap logging widget."""
    with st.expander("⚡ Registro rápido", expanded=True):
        col1, col2 = st.columns(2)
        with col1:
            quantity = st.number_input("Cantidad", min_value=1, max_value=50, value=1, step=1)
        with col2:
            work_day = st.date_input("Fecha", value=date.today())

        columns = st.columns(len(InstallType))
        for column, install_type in zip(columns, InstallType):
            with column:
                if st.button(label_for(install_type), key=f"quick_{install_type.value}"):
                    message = run_async(
                        controller.quick_add(install_type, int(quantity), work_day)
                    )
                    st.toast(message.text)
                    st.rerun()


def render_dashboard_page(controller: JarvisController):
    """Headline numbers and the quick-add widget."""
    st.title("📊 Producción")

    today = date.today()
    stats = dashboard_stats(controller.records, today)
    goal = controller.settings.monthly_goal

    col1, col2, col3 = st.columns(3)
    col1.metric("Hoy", money(stats.today_total), f"{stats.today_count} registros")
    col2.metric("Este mes", money(stats.month_total))
    col3.metric("Racha", f"{stats.streak_days} días")

    if goal > 0:
        progress = goal_progress(stats.month_total, goal)
        st.markdown(f"**Meta mensual:** {money(goal)} ({progress:.0f}%)")
        st.progress(progress / 100)

    render_quick_add(controller)

    st.markdown("### Últimos 7 días")
    series = daily_series(controller.records, today, days=7)
    st.bar_chart(
        {"Monto": [float(amount) for _, amount in series]},
    )
    st.caption(" · ".join(day.strftime("%d/%m") for day, _ in series))

    st.markdown("### Por tipo")
    for install_type, count in stats.count_by_type.items():
        if count:
            st.markdown(f"- **{label_for(install_type)}:** {count}")


def render_history_page(controller: JarvisController):
    """All records, newest first, with delete."""
    st.title("🗂️ Historial")

    type_filter = st.selectbox(
        "Filtrar por tipo",
        options=[None] + list(InstallType),
        format_func=lambda x: "Todos" if x is None else label_for(x),
    )
    history = filter_history(controller.records, type_filter)
    st.markdown(f"Registros: **{history.count}** · Total: **{money(history.total)}**")
    st.markdown("---")

    if not history.records:
        st.info("📋 Aún no hay registros. Usa el registro rápido o habla con Jarvis.")
        return

    pending_delete = st.session_state.get("pending_delete")

    for record in history.records:
        col1, col2, col3 = st.columns([3, 2, 1])
        with col1:
            st.markdown(f"**{record.label}** · {record.date.strftime('%d/%m/%Y')}")
            if record.description:
                st.caption(record.description)
        with col2:
            badge = "" if record.sync_state.value == "SYNCED" else " ⏳"
            st.markdown(f"{money(record.amount)}{badge}")
        with col3:
            if st.button("🗑️", key=f"delete_{record.id}"):
                st.session_state.pending_delete = record.id
                st.rerun()

        if pending_delete == record.id:
            st.warning(f"¿Eliminar {record.label.upper()}?")
            confirm, cancel = st.columns(2)
            with confirm:
                if st.button("Eliminar", key=f"confirm_{record.id}", type="primary"):
                    run_async(controller.delete_record(record.id))
                    st.session_state.pending_delete = None
                    st.rerun()
            with cancel:
                if st.button("Cancelar", key=f"cancel_{record.id}"):
                    st.session_state.pending_delete = None
                    st.rerun()


def render_analysis_page(controller: JarvisController):
    """Period analysis and the yearly view."""
    st.title("📈 Análisis")

    today = date.today()
    period = st.radio(
        "Periodo",
        ["Este mes", "Mes anterior", "Últimos 30 días", "Este año"],
        horizontal=True,
    )
    if period == "Este mes":
        start, end = today.replace(day=1), today
    elif period == "Mes anterior":
        end = today.replace(day=1) - timedelta(days=1)
        start = end.replace(day=1)
    elif period == "Últimos 30 días":
        start, end = today - timedelta(days=29), today
    else:
        start, end = today.replace(month=1, day=1), today

    analysis = period_analysis(controller.records, start, end)

    col1, col2, col3 = st.columns(3)
    col1.metric("Ganancias", money(analysis.total_earnings))
    col2.metric("Actividades", analysis.total_activities)
    col3.metric("Promedio diario", money(analysis.daily_average))

    if analysis.best_day:
        st.markdown(
            f"**Mejor día:** {analysis.best_day.strftime('%d/%m/%Y')} "
            f"({money(analysis.best_day_amount)})"
        )

    if analysis.distribution:
        st.markdown("### Distribución")
        for install_type, share in analysis.distribution.items():
            st.markdown(
                f"- **{label_for(install_type)}:** {share.count} · {money(share.earnings)}"
            )

    st.markdown(f"### {today.year}")
    months = ["ENE", "FEB", "MAR", "ABR", "MAY", "JUN", "JUL", "AGO", "SEP", "OCT", "NOV", "DIC"]
    totals = monthly_totals(controller.records, today.year)
    st.bar_chart({"Monto": {m: float(t) for m, t in zip(months, totals)}})


def render_chat_page(controller: JarvisController):
    """Conversation with the assistant."""
    st.title("🤖 Jarvis")

    with st.expander("📝 Ejemplos"):
        st.markdown("""
        - "Hoy hice 3 residenciales y un poste"
        - "Ayer terminé 2 corporativos"
        - "No, eran 2"
        - "¿Cuánto llevo este mes?"
        """)

    for message in controller.transcript():
        role = "user" if message.sender == Sender.USER else "assistant"
        with st.chat_message(role):
            st.markdown(message.text)

    text = st.chat_input("Informe de producción...", disabled=controller.is_busy)
    if text:
        with st.spinner("Procesando..."):
            try:
                run_async(controller.submit_message(text))
            except TurnInProgressError:
                st.warning("Jarvis todavía está procesando el mensaje anterior.")
        st.rerun()


def render_settings_page(controller: JarvisController):
    """User preferences, prices, backups and connection status."""
    st.title("⚙️ Ajustes")
    current = controller.settings

    with st.form("settings_form"):
        st.markdown("### Perfil")
        nickname = st.text_input("Apodo", value=current.nickname, max_chars=50)
        profile = st.selectbox(
            "Perfil",
            options=list(UserProfile),
            index=list(UserProfile).index(current.profile),
            format_func=lambda p: "Instalador" if p == UserProfile.INSTALLER else "Técnico de servicio",
        )
        theme = st.selectbox(
            "Tema",
            options=list(Theme),
            index=list(Theme).index(current.theme),
            format_func=lambda t: "Oscuro" if t == Theme.DARK else "Claro",
        )
        monthly_goal = st.number_input(
            "Meta mensual", min_value=0.0, value=float(current.monthly_goal), step=10.0
        )

        st.markdown("### Precios")
        prices = {}
        for install_type in InstallType:
            prices[install_type] = st.number_input(
                label_for(install_type),
                min_value=0.0,
                value=float(current.prices[install_type]),
                step=0.5,
                key=f"price_{install_type.value}",
            )

        st.markdown("### Voz")
        tts_enabled = st.checkbox("Respuestas habladas", value=current.tts_enabled)
        pitch = st.slider("Tono", 0.0, 2.0, value=current.voice.pitch, step=0.1)
        rate = st.slider("Velocidad", 0.5, 2.0, value=current.voice.rate, step=0.1)

        st.markdown("### Inteligencia artificial")
        api_key = st.text_input("Gemini API key", value=current.api_key, type="password")

        if st.form_submit_button("💾 Guardar", type="primary"):
            try:
                new_settings = UserSettings(
                    nickname=nickname,
                    profile=profile,
                    theme=theme,
                    tts_enabled=tts_enabled,
                    voice=VoiceSettings(voice_uri=current.voice.voice_uri, pitch=pitch, rate=rate),
                    monthly_goal=str(monthly_goal),
                    prices={t: str(p) for t, p in prices.items()},
                    api_key=api_key,
                )
            except ValueError as e:
                st.error(f"Ajustes no válidos: {e}")
            else:
                controller.update_settings(new_settings)
                st.success("Ajustes guardados")

    if st.button("🔑 Probar API key"):
        with st.spinner("Validando..."):
            valid, error = run_async(controller.validate_api_key(current.api_key))
        if valid:
            st.success("API key válida")
        else:
            st.error(error)

    st.markdown("---")
    st.markdown("### Copias de seguridad")
    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            "⬇️ Backup (JSON)",
            data=controller.export_backup(),
            file_name=f"jarvis-backup-{date.today().isoformat()}.json",
            mime="application/json",
        )
    with col2:
        st.download_button(
            "⬇️ Exportar CSV",
            data=controller.export_csv(),
            file_name=f"jarvis-produccion-{date.today().isoformat()}.csv",
            mime="text/csv",
        )

    uploaded = st.file_uploader("Restaurar backup", type=["json"])
    if uploaded is not None and st.button("♻️ Restaurar"):
        text = uploaded.getvalue().decode("utf-8", errors="replace")
        if run_async(controller.import_backup(text)):
            st.success("Backup restaurado")
            st.rerun()
        else:
            st.error("El archivo no es un backup válido. No se cambió nada.")

    st.markdown("---")
    st.markdown("### Estado de conexión")
    status = run_async(controller.store.check_backend_status())
    if status == BackendStatus.CONNECTED:
        st.success("✅ Google Sheets - Conectado")
    elif status == BackendStatus.DISCONNECTED:
        st.warning("⚠️ Google Sheets - Sin conexión (trabajando en local)")
    else:
        st.info("ℹ️ Google Sheets - No configurado (solo local)")

    config_status = validate_all_settings()
    if config_status.get("gemini", False):
        st.success("✅ Gemini (IA) - Configurado")
    else:
        st.error(f"❌ Gemini (IA) - {config_status.get('gemini_error', 'No configurado')}")

    st.markdown("---")
    st.markdown("### Zona peligrosa")
    confirm_wipe = st.checkbox("Entiendo que se borrarán todos mis registros")
    if st.button("🗑️ Borrar todos mis datos", disabled=not confirm_wipe):
        run_async(controller.wipe_data())
        st.success("Datos borrados")
        st.rerun()


if __name__ == "__main__":
    main()
