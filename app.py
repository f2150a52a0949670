import gradio as gr
import pandas as pd

import api
from db.local_store import init_local_store
from services.log_config import cleanup_old_logs, get_logs, setup_logging
from services.settings import get_all_settings, get_setting, init_settings, set_setting
from shared.formatting import entity_list_to_df, projects_to_df
from shared.models import ProjectMetadata


def app_interface():
    # --- Event Handlers ---
    async def get_projects_dataframe():
        """Get projects as DataFrame for display."""
        projects = await api.list_projects()
        return projects_to_df([ProjectMetadata.from_dict(p) for p in projects])

    async def handle_create(name, description):
        result = await api.create_project(name, description)
        message = result.get("error") or f"Created **{result['name']}** (`{result['id']}`)"
        return message, await get_projects_dataframe()

    async def handle_delete(project_id):
        result = await api.delete_project(project_id.strip())
        message = "Deleted." if result["deleted"] else "No such project."
        return message, await get_projects_dataframe()

    def get_logs_dataframe(level=""):
        """Get recent log records as DataFrame for display."""
        return entity_list_to_df(get_logs(level=level, limit=200), [
            ("Time", "date:timestamp"), ("Level", "level"), ("Project", "project_id"),
            ("Module", "module"),
            ("Message", "message"),
        ])

    def get_settings_dataframe():
        settings = get_all_settings()
        return pd.DataFrame(
            [{"Key": k, "Value": v} for k, v in settings.items()],
            columns=["Key", "Value"],
        )

    def handle_setting(key, value):
        error = set_setting(key.strip(), value.strip())
        if not error:
            api.configure(None)
        return error or f"Saved `{key}`.", get_settings_dataframe()

    # --- UI Components ---
    with gr.Blocks(title="AutoCoder Workspace") as demo:
        with gr.Row():
            gr.Markdown("# AutoCoder Workspace")

        with gr.Tabs():
            with gr.Tab("Projects"):
                with gr.Row():
                    new_name = gr.Textbox(label="Name", scale=2)
                    new_description = gr.Textbox(label="Description", scale=3)
                    create_btn = gr.Button("Create", variant="primary")
                with gr.Row():
                    delete_id = gr.Textbox(label="Project ID", scale=2)
                    delete_btn = gr.Button("Delete", variant="stop")
                project_status = gr.Markdown("")
                projects_table = gr.DataFrame(
                    headers=["ID", "Name", "Files", "Chats", "Tasks", "Last Opened"],
                    interactive=False,
                    label="Projects",
                )
                refresh_btn = gr.Button("Refresh")

            with gr.Tab("Logs"):
                level_filter = gr.Dropdown(
                    label="Level",
                    choices=["", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    value="",
                )
                logs_table = gr.DataFrame(
                    headers=["Time", "Level", "Project", "Module", "Message"],
                    interactive=False,
                    label="Logs",
                )

            with gr.Tab("Settings"):
                with gr.Row():
                    setting_key = gr.Dropdown(
                        label="Key",
                        choices=["remote_api_url", "use_remote_api", "remote_timeout_seconds",
                                 "log_level", "log_retention_days"],
                    )
                    setting_value = gr.Textbox(label="Value")
                    setting_btn = gr.Button("Save")
                setting_status = gr.Markdown("")
                settings_table = gr.DataFrame(headers=["Key", "Value"], interactive=False)

            with gr.Tab("Tools"):
                gr.Markdown("# Workspace Operations")
                gr.Markdown("Workspace tools exposed via MCP")

                gr.api(api.list_projects)
                gr.api(api.create_project)
                gr.api(api.delete_project)
                gr.api(api.open_project)
                gr.api(api.close_project)

                gr.api(api.import_file)
                gr.api(api.toggle_folder)
                gr.api(api.edit_file)
                gr.api(api.apply_file_changes)
                gr.api(api.remove_node)
                gr.api(api.get_file_tree)
                gr.api(api.get_project_context)

                gr.api(api.set_knowledge_base)
                gr.api(api.add_clipboard_item)
                gr.api(api.remove_clipboard_item)
                gr.api(api.add_chat_message)
                gr.api(api.get_chat_history)

                gr.Markdown("## MCP Tools Available")
                gr.Markdown("`http://localhost:7860/gradio_api/mcp/`")

        # --- Wiring ---
        create_btn.click(handle_create, inputs=[new_name, new_description],
                         outputs=[project_status, projects_table])
        delete_btn.click(handle_delete, inputs=[delete_id], outputs=[project_status, projects_table])
        refresh_btn.click(get_projects_dataframe, outputs=[projects_table])
        level_filter.change(get_logs_dataframe, inputs=[level_filter], outputs=[logs_table])
        setting_btn.click(handle_setting, inputs=[setting_key, setting_value],
                          outputs=[setting_status, settings_table])

        demo.load(get_projects_dataframe, outputs=[projects_table])
        demo.load(get_logs_dataframe, outputs=[logs_table])
        demo.load(get_settings_dataframe, outputs=[settings_table])

    return demo


if __name__ == "__main__":
    init_local_store()
    init_settings()
    setup_logging(get_setting("log_level"))
    cleanup_old_logs(int(get_setting("log_retention_days") or 30))
    demo = app_interface()
    demo.launch(mcp_server=True)
