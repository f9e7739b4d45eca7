"""
Weekly Drop DAG

This DAG materialises every eligible user's weekly drop shortly after the
Monday cutover, so the first read of the week finds the row already written.
It calls the matchmaking service batch endpoint and alerts Google Chat on the outcome.
"""

import os
import requests
from datetime import timedelta

import pendulum
from airflow import DAG
from airflow.operators.python import PythonOperator
from airflow.exceptions import AirflowException

WEEK_TIMEZONE = os.environ.get("WEEK_TIMEZONE", "UTC")

# Default arguments for the DAG
default_args = {
    "owner": "airflow",
    "depends_on_past": False,
    "email_on_failure": False,
    "email_on_retry": False,
    "retries": 2,
    "retry_delay": timedelta(minutes=5),
    "start_date": pendulum.datetime(2025, 1, 6, tz=WEEK_TIMEZONE),
    "execution_timeout": timedelta(hours=2),
}

DAG_ID = "weekly_drop_batch"

# Get environment variables
GOOGLE_CHAT_WEBHOOK = os.environ.get("MATCHMAKING_GOOGLE_CHAT_WEBHOOK")
SERVICE_BASE_URL = os.environ.get("MATCHMAKING_SERVICE_URL", "http://localhost:8000")
BATCH_TIMEOUT_SECONDS = int(os.environ.get("WEEKLY_BATCH_TIMEOUT_SECONDS", 3600))


class GoogleChatAlert:
    """
    Class for sending alerts to Google Chat with card formatting.
    """

    def __init__(self, webhook_url=None, dag_id=None):
        """
        Initialize the GoogleChatAlert class.

        Args:
            webhook_url: The Google Chat webhook URL
            dag_id: The Airflow DAG ID
        """
        self.webhook_url = webhook_url or GOOGLE_CHAT_WEBHOOK
        self.dag_id = dag_id or DAG_ID

        self.status_config = {
            "success": {"icon": "✅", "title": "Success"},
            "failed": {"icon": "❌", "title": "Failed"},
        }

    def send(self, context, status):
        """
        Send an alert to Google Chat.

        Args:
            context: The Airflow context
            status: "success" or "failed"
        """
        if not self.webhook_url:
            print("No Google Chat webhook URL provided. Skipping alert.")
            return

        task_instance = context.get("task_instance")
        dag_run = context.get("dag_run")
        task_id = task_instance.task_id if task_instance else "unknown"
        run_id = getattr(dag_run, "run_id", "unknown") if dag_run else "unknown"
        config = self.status_config.get(status, self.status_config["failed"])

        card = {
            "cards": [
                {
                    "header": {
                        "title": f"Weekly Drop Alert: {config['title']}",
                        "subtitle": self.dag_id,
                    },
                    "sections": [
                        {
                            "widgets": [
                                {
                                    "textParagraph": {
                                        "text": f"{config['icon']} Task '{task_id}' {status}"
                                    }
                                },
                                {"keyValue": {"topLabel": "Run ID", "content": run_id}},
                            ]
                        }
                    ],
                }
            ]
        }

        if task_instance and hasattr(task_instance, "log_url"):
            card["cards"][0]["sections"][0]["widgets"].append(
                {"textParagraph": {"text": f"<a href='{task_instance.log_url}'>View Logs</a>"}}
            )

        try:
            response = requests.post(
                self.webhook_url,
                headers={"Content-Type": "application/json; charset=UTF-8"},
                json=card,
                timeout=10,
            )
            if response.status_code != 200:
                print(f"Failed to send alert to Google Chat. Status code: {response.status_code}")
        except Exception as e:
            # Avoid failing callback
            print(f"Failed to post alert to Google Chat: {str(e)}")

    def on_success(self, context):
        """Send success notification"""
        self.send(context, "success")

    def on_failure(self, context):
        """Send failure notification"""
        self.send(context, "failed")


alerts = GoogleChatAlert(webhook_url=GOOGLE_CHAT_WEBHOOK)


def run_weekly_drop_batch(**kwargs):
    """Call the batch endpoint and fail the task if any user errored."""
    url = f"{SERVICE_BASE_URL.rstrip('/')}/weekly-drops/batch"
    try:
        response = requests.post(url, json={}, timeout=BATCH_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as e:
        raise AirflowException(f"Weekly drop batch request failed: {str(e)}")

    payload = response.json()
    results = payload.get("results", {})
    counts = {}
    for status in results.values():
        counts[status] = counts.get(status, 0) + 1
    print(f"Weekly drop batch processed {payload.get('processed', 0)} users: {counts}")

    if counts.get("error"):
        raise AirflowException(f"Weekly drop batch had {counts['error']} failed users")
    return counts


# Create the DAG
with DAG(
    dag_id=DAG_ID,
    default_args=default_args,
    description="Create this week's weekly drop for every eligible user",
    schedule_interval="5 8 * * 1",  # "At 08:05 on Monday", just after the cutover
    catchup=False,
    tags=["matchmaking", "weekly_drop"],
    on_success_callback=alerts.on_success,
    on_failure_callback=alerts.on_failure,
) as dag:
    weekly_drop_batch = PythonOperator(
        task_id="run_weekly_drop_batch",
        python_callable=run_weekly_drop_batch,
        on_failure_callback=alerts.on_failure,
    )
