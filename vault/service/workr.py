"""
Client for the remote job queue.

Heavy jobs (downloads behind bot protection, thumbnails, previews, HLS) can
be handed to a separate worker service. Jobs are submitted over HTTP and
polled until they finish.
"""
import time

import requests

from vault.service.config import get_workr_timeout, get_workr_url


class WorkrError(Exception):
    """The job queue rejected a request or a job did not finish in time"""


class WorkrClient:
    """Submits jobs to the queue at base_url and waits for their result"""

    def __init__(self, base_url, timeout=None, poll_interval=1.0, request_timeout=10):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout if timeout is not None else get_workr_timeout()
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout

    def submit_job(self, job_type, payload, priority=None, max_retries=None):
        """
        Submit a job.

        Returns:
            dict: The queue's response, containing 'jobId'
        """
        response = requests.post(
            f"{self.base_url}/api/jobs",
            json={
                'type': job_type,
                'payload': payload,
                'priority': priority,
                'maxRetries': max_retries,
            },
            timeout=self.request_timeout,
        )
        if not response.ok:
            try:
                message = response.json().get('error')
            except ValueError:
                message = None
            raise WorkrError(message or f"Workr API error: {response.status_code}")
        return response.json()

    def get_job(self, job_id):
        """Job state, or None if the queue does not know the job"""
        response = requests.get(f"{self.base_url}/api/jobs/{job_id}", timeout=self.request_timeout)
        if response.status_code == 404:
            return None
        if not response.ok:
            raise WorkrError(f"Workr API error: {response.status_code}")
        return response.json()

    def wait_for_job(self, job_id, timeout=None):
        """
        Poll a job until it completes, fails or is cancelled.

        Returns:
            dict: {'success': True, 'result': ...} or {'success': False, 'error': ...}

        Raises:
            WorkrError: If the job disappears or the timeout expires
        """
        if timeout is None:
            timeout = self.timeout
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            job = self.get_job(job_id)
            if job is None:
                raise WorkrError('Job not found')

            status = job.get('status')
            if status == 'completed':
                return {'success': True, 'result': job.get('result')}
            if status == 'failed':
                return {'success': False, 'error': job.get('error')}
            if status == 'cancelled':
                return {'success': False, 'error': 'Job was cancelled'}

            time.sleep(self.poll_interval)

        raise WorkrError('Job timeout')

    def submit_and_wait(self, job_type, payload, timeout=None):
        job = self.submit_job(job_type, payload)
        return self.wait_for_job(job['jobId'], timeout=timeout)


def get_workr_client():
    """Client for the configured queue, or None when VAULT_WORKR_URL is empty"""
    base_url = get_workr_url()
    if not base_url:
        return None
    return WorkrClient(base_url)
