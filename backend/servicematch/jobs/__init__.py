# Batch jobs package init
