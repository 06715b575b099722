"""Quality-of-service priority types, a byte-bounded priority queue and a queueing handler."""