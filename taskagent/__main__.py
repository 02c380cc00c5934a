from taskagent.main import task_agent

task_agent()
